"""
HTTP API for peerbook.

Serves ICE server lists with fresh TURN credentials, plus health and
readiness probes.
"""

import asyncio

from aiohttp import web
from loguru import logger

from .errors import InvalidInput, NotFound, StoreError
from .store import KVStore
from .turn import CredentialIssuer, resolve_ice_servers


STORE_KEY = web.AppKey("store", KVStore)
ISSUER_KEY = web.AppKey("issuer", CredentialIssuer)


def error_response(message: str, status: int) -> web.Response:
    return web.json_response({'success': False, 'error': message}, status=status)


async def handle_ice_servers(request: web.Request) -> web.Response:
    """
    Return the active ICE servers.

    POST /iceservers?email=<identity>
    Returns: [{"urls": ...}, {"urls": ..., "username": ..., "credential": ...}]
    """
    identity = request.query.get('email', '')
    if not identity and request.can_read_body:
        form = await request.post()
        identity = str(form.get('email', ''))

    try:
        servers = await asyncio.to_thread(
            resolve_ice_servers, request.app[STORE_KEY], request.app[ISSUER_KEY], identity
        )
    except NotFound:
        logger.warning("ICE servers requested but none is active")
        return error_response("No ICE servers found", 404)
    except InvalidInput as e:
        logger.warning(f"Rejected ICE server request: {e}")
        return error_response(str(e), 400)
    except StoreError as e:
        logger.error(f"Failed to read ICE servers from store: {e}")
        return error_response(f"Failed to read ICE servers from db: {e}", 500)

    logger.debug(f"Served {len(servers)} ICE servers to {identity or 'anonymous'}")
    return web.json_response(servers)


async def health_check(request: web.Request) -> web.Response:
    """Health check endpoint."""
    return web.json_response({
        'status': 'healthy',
        'service': 'peerbook',
    })


async def ready_check(request: web.Request) -> web.Response:
    """Readiness check endpoint: the store must answer a ping."""
    try:
        await asyncio.to_thread(request.app[STORE_KEY].ping)
    except StoreError as e:
        return web.json_response({
            'status': 'not_ready',
            'store': 'disconnected',
            'error': str(e)
        }, status=503)

    return web.json_response({
        'status': 'ready',
        'store': 'connected'
    })


def create_app(store: KVStore, issuer: CredentialIssuer) -> web.Application:
    """
    Build the HTTP application.

    Args:
        store: Connected store adapter
        issuer: TURN credential issuer

    Returns:
        aiohttp application ready to run
    """
    app = web.Application()
    app[STORE_KEY] = store
    app[ISSUER_KEY] = issuer
    app.router.add_post('/iceservers', handle_ice_servers)
    app.router.add_get('/health', health_check)
    app.router.add_get('/ready', ready_check)
    return app
