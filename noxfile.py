from __future__ import annotations

import nox

nox.options.default_venv_backend = "virtualenv"
nox.options.error_on_missing_interpreters = False
nox.options.sessions = ["tests", "lint", "typecheck"]

PYTHON_VERSIONS = ["3.10", "3.11", "3.12", "3.13"]
PACKAGE = "issuedb"


def _install_dev(session: nox.Session) -> None:
    session.install("-e", ".[dev]")


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    _install_dev(session)
    session.run(
        "pytest",
        f"--cov={PACKAGE}",
        "--cov-report=term-missing",
        "--cov-report=xml",
        *session.posargs,
    )


@nox.session
def lint(session: nox.Session) -> None:
    _install_dev(session)
    session.run("ruff", "check", "src", "tests")


@nox.session
def typecheck(session: nox.Session) -> None:
    _install_dev(session)
    session.run("mypy", f"src/{PACKAGE}")


@nox.session
def cli(session: nox.Session) -> None:
    """Smoke-test the installed console script."""
    session.install(".")
    session.run("issue-db", "--help", silent=True)
    session.run("python", "-m", PACKAGE, "keys", "--help", silent=True)


@nox.session
def build(session: nox.Session) -> None:
    _install_dev(session)
    session.run("python", "-m", "build")
