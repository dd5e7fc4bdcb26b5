"""
API依赖项 - 认证、授权与应用服务装配
"""
from functools import lru_cache
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer, OAuth2PasswordBearer

from api.middleware.request_id import bind_actor
from application.ports.idempotency import EventDeduplicator
from application.ports.notifier import Notifier
from application.ports.payment_gateway import CardPaymentGateway, RedirectPaymentGateway
from application.services.card_payment_service import CardPaymentService
from application.services.coupon_service import CouponService
from application.services.ledger_service import TransactionLedger
from application.services.manual_payment_service import ManualPaymentService
from application.services.order_service import OrderService
from application.services.payout_service import PayoutService
from application.services.redirect_payment_service import RedirectPaymentService
from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException
from domain.common.actor import Actor, Role
from domain.common.exceptions import BusinessException, ForbiddenError
from infrastructure.cache import RedisEventDeduplicator, get_redis_cache
from infrastructure.composition import gateway_config, marketplace_config, uow_factory
from infrastructure.external.payments import get_card_gateway, get_redirect_gateway
from infrastructure.tasks import CeleryNotifier
from shared.codes import BusinessCode


# OAuth2 password bearer for Swagger UI
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/v1/auth/login",
    scheme_name="OAuth2",
    description="Token issued by the identity service",
    auto_error=False,
)

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


async def get_token(
    oauth2_token: Optional[str] = Depends(oauth2_scheme),
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)
) -> str:
    """从OAuth2或Bearer token中提取token"""
    if oauth2_token:
        return oauth2_token

    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_actor(token: str) -> Actor:
    """解析访问令牌为请求主体；签发由身份服务负责"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredException()
    except jwt.PyJWTError:
        raise UnauthorizedException("Invalid authentication credentials")

    if payload.get("type", "access") != "access":
        raise UnauthorizedException("Invalid token type")
    try:
        actor_id = int(payload["sub"])
        role = Role(payload.get("role", Role.USER.value))
    except (KeyError, TypeError, ValueError):
        raise UnauthorizedException("Invalid token payload")

    return Actor(
        id=actor_id,
        role=role,
        email=payload.get("email"),
        name=payload.get("name"),
        phone=payload.get("phone"),
    )


async def get_current_actor(token: str = Depends(get_token)) -> Actor:
    """获取当前请求主体"""
    actor = decode_actor(token)
    bind_actor(actor)
    return actor


def require_roles(*roles: Role):
    """按角色限制访问；super_admin 视同 admin"""
    allowed = set(roles)
    if Role.ADMIN in allowed:
        allowed.add(Role.SUPER_ADMIN)

    async def _checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise ForbiddenError(
                "Insufficient role for this action",
                details={"required": sorted(r.value for r in allowed)},
            )
        return actor

    return _checker


get_admin = require_roles(Role.ADMIN)
get_vendor = require_roles(Role.VENDOR)


# ---- 应用服务装配 ----

@lru_cache
def _card_gateway() -> Optional[CardPaymentGateway]:
    return get_card_gateway()


@lru_cache
def _redirect_gateway() -> Optional[RedirectPaymentGateway]:
    return get_redirect_gateway()


def _gateway_unavailable(provider: str) -> BusinessException:
    return BusinessException(
        code=BusinessCode.SERVICE_UNAVAILABLE,
        message=f"Payment provider {provider} is not configured",
        error_type="ServiceUnavailable",
        details={"provider": provider},
    )


def get_notifier() -> Notifier:
    return CeleryNotifier()


async def get_event_deduplicator() -> Optional[EventDeduplicator]:
    cache = await get_redis_cache()
    if cache is None:
        return None
    return RedisEventDeduplicator(cache)


def get_order_service(notifier: Notifier = Depends(get_notifier)) -> OrderService:
    return OrderService(uow_factory(), marketplace_config(), notifier)


def get_coupon_service() -> CouponService:
    return CouponService(uow_factory())


def get_payout_service(notifier: Notifier = Depends(get_notifier)) -> PayoutService:
    return PayoutService(uow_factory(), marketplace_config(), notifier)


def get_ledger(notifier: Notifier = Depends(get_notifier)) -> TransactionLedger:
    return TransactionLedger(
        uow_factory(),
        gateway_config(),
        notifier,
        card_gateway=_card_gateway(),
        redirect_gateway=_redirect_gateway(),
        max_page_size=settings.MAX_PAGE_SIZE,
    )


def get_card_payment_service(
    ledger: TransactionLedger = Depends(get_ledger),
    deduplicator: Optional[EventDeduplicator] = Depends(get_event_deduplicator),
) -> CardPaymentService:
    gateway = _card_gateway()
    if gateway is None:
        raise _gateway_unavailable("stripe")
    return CardPaymentService(ledger, gateway, deduplicator)


def get_redirect_payment_service(ledger: TransactionLedger = Depends(get_ledger)) -> RedirectPaymentService:
    gateway = _redirect_gateway()
    if gateway is None:
        raise _gateway_unavailable("sslcommerz")
    return RedirectPaymentService(ledger, gateway)


def get_manual_payment_service(ledger: TransactionLedger = Depends(get_ledger)) -> ManualPaymentService:
    return ManualPaymentService(ledger)
