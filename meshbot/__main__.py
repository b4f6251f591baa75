"""Entry point for running meshbot as a module: python -m meshbot"""

from meshbot.cli.main import app

if __name__ == "__main__":
    app()
