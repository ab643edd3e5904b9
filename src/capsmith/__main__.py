"""Run the capsmith chat loop."""

from capsmith.cli import main


if __name__ == "__main__":
    main()
