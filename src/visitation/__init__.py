"""Visit timer and ban/violation engine for the visitor management backend."""
