"""JSON-RPC reverse proxy shielding a keyed upstream provider."""
