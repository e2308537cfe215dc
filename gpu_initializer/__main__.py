"""Main entry point for the GPU initializer."""

from gpu_initializer.cli import cli

if __name__ == "__main__":
    cli(prog_name="gpu-initializer")
