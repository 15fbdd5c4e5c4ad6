"""User-facing interfaces of serverkit."""
