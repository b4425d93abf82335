"""Turn handling: LLM provider, web search augmentation and the chat API."""
