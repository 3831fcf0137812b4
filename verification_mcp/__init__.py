"""
Insurance verification MCP server package.

This package exposes audited, read-only MCP tools for:
- Patient identity lookup and demographic search
- Insurance policy listing and details (member/group IDs masked by default)
- Verification bundles with deterministic readiness checks

Every call passes an API-key + purpose-of-use gate, and every disclosure is
recorded in the Firestore audit log. Served over HTTP (FastAPI) or MCP stdio.
"""
