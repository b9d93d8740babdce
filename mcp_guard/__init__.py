"""MCP guardrail: aggregate MCP servers behind one endpoint with moderated tool outputs."""

__version__ = "1.1.0"
