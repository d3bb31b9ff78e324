"""MCP tool registration for the responsive images server"""
