"""PipeVault: oilfield pipe storage yard management."""
