"""Entry point for `python -m bake_filling`."""

from bake_filling.cli import app

if __name__ == "__main__":
    app()
