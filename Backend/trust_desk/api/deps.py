from fastapi import Request

from trust_desk.services.desk import TrustDesk


def get_desk(request: Request) -> TrustDesk:
    return request.app.state.desk
