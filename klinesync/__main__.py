"""Package entrypoint – allows `python -m klinesync …`."""

from __future__ import annotations

from .cli import run


def main() -> None:  # noqa: D401 – CLI entrypoint
    """Delegate to :func:`klinesync.cli.run`."""

    run()


if __name__ == "__main__":  # pragma: no cover – direct invocation
    main()
