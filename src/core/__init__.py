"""Core domain package for supportlens.

Core contains analysis, routing, ledger and delivery logic without any
Discord, OpenAI or storage-specific code, keeping the business logic portable.
"""
