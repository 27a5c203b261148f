"""Language-model generation through the proxy, and the prompts sent to it."""
