"""Cookie directives for the flow's __Host- cookies.

Components describe the cookie they want set or removed; the controller
applies it to the outgoing response with Starlette's set_cookie and
delete_cookie. Every cookie is host-only, Secure, HttpOnly and scoped to
Path=/, which the __Host- prefix requires.
"""

from dataclasses import dataclass
from typing import Literal, Optional

from starlette.responses import Response


@dataclass(frozen=True)
class CookieDirective:
    key: str
    value: str = ""
    samesite: Literal["lax", "strict"] = "lax"
    max_age: Optional[int] = None
    delete: bool = False

    def apply(self, response: Response) -> None:
        if self.delete:
            response.delete_cookie(
                key=self.key,
                path="/",
                secure=True,
                httponly=True,
                samesite=self.samesite,
            )
            return
        response.set_cookie(
            key=self.key,
            value=self.value,
            max_age=self.max_age,
            path="/",
            secure=True,
            httponly=True,
            samesite=self.samesite,
        )


def apply_cookies(response: Response, directives) -> Response:
    for directive in directives:
        directive.apply(response)
    return response
