import sys

from batchopt.cli import main


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
