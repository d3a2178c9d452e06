from fastapi import Request

from fizzrix.storage import Repository


def get_repo(request: Request) -> Repository:
    """The Repository built by create_app()."""
    return request.app.state.repo
