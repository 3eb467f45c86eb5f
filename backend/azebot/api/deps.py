"""
API Dependencies

Resolves the PaymentServices container built in the application lifespan.
"""
from fastapi import Request

from ..services.container import PaymentServices


def get_services(request: Request) -> PaymentServices:
    return request.app.state.services
