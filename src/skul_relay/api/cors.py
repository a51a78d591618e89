"""CORS handling for the web and mobile frontends."""

from starlette.datastructures import Headers
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response


class LenientPreflightCORSMiddleware(CORSMiddleware):
    """CORS middleware whose preflight always answers 200 with an empty body.

    Allowed origins are reflected in ``Access-Control-Allow-Origin``; other
    origins get the same method and header lists without an origin grant, so
    the browser rejects the follow-up request on its own.
    """

    def preflight_response(self, request_headers: Headers) -> Response:
        headers = dict(self.preflight_headers)
        origin = request_headers["origin"]
        if self.is_allowed_origin(origin=origin):
            headers["Access-Control-Allow-Origin"] = origin
        else:
            headers.pop("Access-Control-Allow-Credentials", None)
        return Response(status_code=200, headers=headers)
