"""Agent bridge: fleet operations as JSON-RPC tools over stdio."""
