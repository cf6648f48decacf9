from contextlib import asynccontextmanager
from fastapi import FastAPI
from storefront.api import cur_version, version_prefix
from storefront.api.routers import public_routers
from storefront.common.custom_exceptions import register_all_exceptions
from storefront.common.logging_setup import setup_logging, stop_logging
from storefront.db.connection import async_engine, async_session
from storefront.middlewares.auth_middleware import AuthenticationMiddleware
from storefront.middlewares.request_id_middleware import RequestIdMiddleware


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    setup_logging()
    try:
        yield
    finally:
        await async_engine.dispose()
        stop_logging()


def create_app():
    app = FastAPI(
        title="Storefront",
        version=cur_version,
        lifespan=app_lifespan)

    app.include_router(public_routers)

    app.add_middleware(AuthenticationMiddleware, session_maker=async_session,
                       paths=[f"{version_prefix}/auth/send-code",
                              f"{version_prefix}/auth/verify-code",
                              f"{version_prefix}/health",
                              f"{version_prefix}/products",
                              "/docs", "/openapi.json"],
                       maybe_auth_paths=[f"{version_prefix}/cart/view",
                                         f"{version_prefix}/auth/logout"])
    # added last so it wraps everything, auth failures carry the request id too
    app.add_middleware(RequestIdMiddleware)
    register_all_exceptions(app)

    return app


app = create_app()
