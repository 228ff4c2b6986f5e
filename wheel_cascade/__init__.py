"""wheel-cascade: release a uv workspace package together with its dependants."""
