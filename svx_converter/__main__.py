"""Package entry point for ``python -m svx_converter``.

WHY: Users run the converter as ``python -m svx_converter input.wav``
when the ``svx-convert`` console script is not on PATH.

HOW: Delegates straight to the CLI's main().
"""

from svx_converter.cli import main

if __name__ == "__main__":
    main()
