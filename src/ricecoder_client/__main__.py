"""Entry point: python -m ricecoder_client."""

from ricecoder_client.cli import main

main()
