"""Mirror the workflow and webhook state of remote n8n instances."""
