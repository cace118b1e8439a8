"""OAuth proxy server for GitHub sign-in.

This package provides the FastAPI app that brokers the authorization-code flow
between an MCP client and GitHub: consent, the upstream redirect and callback,
identity resolution and completion through the authorization server.
"""
