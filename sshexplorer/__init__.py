"""Browse local folders and remote hosts over SSH/SFTP."""

__version__ = "0.1.0"
