"""Command line entrypoint (python -m crm_recon.cli)."""
