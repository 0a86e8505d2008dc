"""
Entry point for ``python -m stellar_av``
"""
from .cli import cli

if __name__ == "__main__":
    cli()
