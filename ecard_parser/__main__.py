"""
Module entry point for: python -m ecard_parser

Allows running the parser directly as a module:
    python -m ecard_parser run [options]
    python -m ecard_parser scan <directory> [options]
    python -m ecard_parser extract <json_path> [options]
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
