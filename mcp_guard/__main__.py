from mcp_guard.cli import main

main()
