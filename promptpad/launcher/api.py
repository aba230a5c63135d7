"""HTTP API for the PromptPad daemon."""

import asyncio
from typing import Any, Dict, Optional

from aiohttp import web
from loguru import logger

from .errors import (
    DocumentNotFoundError,
    DocumentParseError,
    PromptPadError,
    StorageIOError,
    ValidationError,
)
from .state import HideEffect, PasteEffect, parse_key


def create_api_app(daemon) -> web.Application:
    """Create the aiohttp application with routes."""
    app = web.Application(middlewares=[cors_middleware])
    app['daemon'] = daemon

    # Launcher session
    app.router.add_get('/state', handle_state)
    app.router.add_post('/events', handle_event)
    app.router.add_post('/show', handle_show)
    app.router.add_post('/hide', handle_hide)
    app.router.add_post('/toggle', handle_toggle)

    # Library
    app.router.add_get('/prompts', handle_list_prompts)
    app.router.add_post('/prompts', handle_create_prompt)
    app.router.add_put('/prompts/{id}', handle_update_prompt)
    app.router.add_delete('/prompts/{id}', handle_delete_prompt)
    app.router.add_get('/prompts/{id}/content', handle_prompt_content)
    app.router.add_get('/search/content', handle_search_content)
    app.router.add_get('/folders', handle_folders)
    app.router.add_post('/folders', handle_create_folder)
    app.router.add_get('/tags', handle_tags)
    app.router.add_post('/import', handle_import)
    app.router.add_post('/import/markdown', handle_import_markdown)
    app.router.add_get('/export', handle_export)
    app.router.add_post('/admin/reindex', handle_reindex)

    # Daemon
    app.router.add_get('/settings', handle_get_settings)
    app.router.add_put('/settings', handle_update_settings)
    app.router.add_get('/status', handle_status)
    app.router.add_post('/shutdown', handle_shutdown)

    return app


@web.middleware
async def cors_middleware(request: web.Request, handler):
    response = await handler(request)
    response.headers['Access-Control-Allow-Origin'] = '*'
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PUT, DELETE, OPTIONS'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
    return response


_STATUS_BY_ERROR = [
    (ValidationError, 400, 'invalid_request'),
    (DocumentParseError, 400, 'parse_error'),
    (DocumentNotFoundError, 404, 'not_found'),
    (StorageIOError, 500, 'io_error'),
]


def error_response(code: str, message: str, status: int) -> web.Response:
    return web.json_response({'error': {'code': code, 'message': message}}, status=status)


def _from_exception(e: Exception) -> web.Response:
    for error_type, status, code in _STATUS_BY_ERROR:
        if isinstance(e, error_type):
            return error_response(code, str(e), status)
    logger.exception(f"Unhandled API error: {e}")
    return error_response('internal_error', str(e), 500)


async def _json_body(request: web.Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise ValidationError("Request body must be JSON") from None


def _effect_dict(effect) -> Optional[Dict[str, Any]]:
    if isinstance(effect, PasteEffect):
        return {
            'type': 'paste',
            'id': effect.document.id,
            'name': effect.document.name,
            'extraText': effect.extra_text,
        }
    if isinstance(effect, HideEffect):
        return {'type': 'hide'}
    return None


async def handle_state(request: web.Request) -> web.Response:
    controller = request.app['daemon'].controller
    return web.json_response(controller.state.to_dict())


async def handle_event(request: web.Request) -> web.Response:
    """
    Feed one input event to the launcher.

    Body is ``{"key": "ArrowDown"}`` or ``{"text": "new field text"}``.
    """
    controller = request.app['daemon'].controller
    try:
        data = await _json_body(request)
        if not isinstance(data, dict):
            raise ValidationError("Request body must be an object")

        if 'key' in data:
            try:
                key = parse_key(str(data['key']))
            except ValueError as e:
                raise ValidationError(str(e)) from None
            transition = await controller.press_key(key)
            return web.json_response({
                'handled': transition.handled,
                'effect': _effect_dict(transition.effect),
                'state': controller.state.to_dict(),
            })

        if 'text' in data:
            if not isinstance(data['text'], str):
                raise ValidationError("text must be a string")
            state = await controller.input_text(data['text'])
            return web.json_response({'handled': True, 'effect': None, 'state': state.to_dict()})

        raise ValidationError("key or text is required")
    except PromptPadError as e:
        return _from_exception(e)


async def handle_show(request: web.Request) -> web.Response:
    state = await request.app['daemon'].controller.show()
    return web.json_response(state.to_dict())


async def handle_hide(request: web.Request) -> web.Response:
    state = await request.app['daemon'].controller.hide()
    return web.json_response(state.to_dict())


async def handle_toggle(request: web.Request) -> web.Response:
    """Hotkey action: show when hidden, otherwise hide and reset."""
    state = await request.app['daemon'].controller.toggle()
    return web.json_response(state.to_dict())


async def handle_list_prompts(request: web.Request) -> web.Response:
    """Ranked prompts for ``q`` (blank lists by usage)."""
    daemon = request.app['daemon']
    query = request.query.get('q', '')
    try:
        limit = int(request.query.get('limit', 0))
    except ValueError:
        return error_response('invalid_request', 'limit must be an integer', 400)

    results = daemon.engine.rank(query, daemon.catalog.documents())
    if limit > 0:
        results = results[:limit]
    return web.json_response({
        'query': query,
        'results': [r.to_dict() for r in results],
        'total': len(daemon.catalog),
    })


async def _json_object(request: web.Request) -> Dict[str, Any]:
    data = await _json_body(request)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be an object")
    return data


def _prompt_fields(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validated prompt fields; with ``partial`` only the keys present are returned."""
    fields: Dict[str, Any] = {}
    for key in ('name', 'description', 'folder'):
        if key in data or not partial:
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"{key} must be a string")
            fields[key] = value

    if 'content' in data or not partial:
        if not isinstance(data.get('content'), str):
            raise ValidationError("content is required")
        fields['content'] = data['content']

    if 'tags' in data or not partial:
        tags = data.get('tags') or []
        if not isinstance(tags, list):
            raise ValidationError("tags must be a list")
        fields['tags'] = [str(t) for t in tags]

    if partial:
        fields = {k: v for k, v in fields.items() if v is not None}
    return fields


async def handle_create_prompt(request: web.Request) -> web.Response:
    daemon = request.app['daemon']
    try:
        fields = _prompt_fields(await _json_object(request))
        document = await daemon.create_prompt(**fields)
        return web.json_response(document.to_dict(), status=201)
    except Exception as e:
        return _from_exception(e)


async def handle_update_prompt(request: web.Request) -> web.Response:
    """Partial update; absent keys keep their current value."""
    daemon = request.app['daemon']
    try:
        fields = _prompt_fields(await _json_object(request), partial=True)
        document = await daemon.update_prompt(request.match_info['id'], **fields)
        return web.json_response(document.to_dict())
    except Exception as e:
        return _from_exception(e)


async def handle_delete_prompt(request: web.Request) -> web.Response:
    daemon = request.app['daemon']
    try:
        document = await daemon.delete_prompt(request.match_info['id'])
        return web.json_response({'status': 'deleted', 'id': document.id})
    except Exception as e:
        return _from_exception(e)


async def handle_prompt_content(request: web.Request) -> web.Response:
    daemon = request.app['daemon']
    document_id = request.match_info['id']
    try:
        content = await daemon.prompt_content(document_id)
        return web.json_response({'id': document_id, 'content': content})
    except Exception as e:
        return _from_exception(e)


async def handle_search_content(request: web.Request) -> web.Response:
    """Prompts whose body contains ``q`` (case-insensitive)."""
    daemon = request.app['daemon']
    query = request.query.get('q', '')
    try:
        documents = await daemon.search_content(query)
        return web.json_response({
            'query': query,
            'results': [d.to_dict() for d in documents],
        })
    except Exception as e:
        return _from_exception(e)


async def handle_folders(request: web.Request) -> web.Response:
    return web.json_response({'folders': request.app['daemon'].list_folders()})


async def handle_create_folder(request: web.Request) -> web.Response:
    daemon = request.app['daemon']
    try:
        data = await _json_object(request)
        name = data.get('name')
        if not isinstance(name, str):
            raise ValidationError("name is required")
        return web.json_response({'folder': daemon.create_folder(name)}, status=201)
    except Exception as e:
        return _from_exception(e)


async def handle_tags(request: web.Request) -> web.Response:
    return web.json_response({'tags': request.app['daemon'].catalog.tags})


async def handle_import(request: web.Request) -> web.Response:
    """Bulk import; accepts a list or ``{"prompts": [...]}``."""
    daemon = request.app['daemon']
    try:
        data = await _json_body(request)
        if isinstance(data, dict):
            data = data.get('prompts')
        if not isinstance(data, list):
            raise ValidationError("Expected a list of prompts")
        report = await daemon.import_items(data)
        return web.json_response(report.to_dict())
    except Exception as e:
        return _from_exception(e)


async def handle_import_markdown(request: web.Request) -> web.Response:
    """Import one markdown document: ``{"fileName", "content", "folder"?}``."""
    daemon = request.app['daemon']
    try:
        data = await _json_object(request)
        file_name, content = data.get('fileName'), data.get('content')
        if not isinstance(file_name, str) or not isinstance(content, str):
            raise ValidationError("fileName and content are required")
        folder = data.get('folder')
        if folder is not None and not isinstance(folder, str):
            raise ValidationError("folder must be a string")
        document = await daemon.import_markdown(file_name, content, folder)
        return web.json_response(document.to_dict(), status=201)
    except Exception as e:
        return _from_exception(e)


async def handle_export(request: web.Request) -> web.Response:
    daemon = request.app['daemon']
    try:
        return web.json_response(await daemon.export_items())
    except Exception as e:
        return _from_exception(e)


async def handle_reindex(request: web.Request) -> web.Response:
    """Rebuild the index from the prompt files."""
    daemon = request.app['daemon']
    try:
        report = await daemon.reindex()
        return web.json_response({
            'status': 'reindexed',
            'prompts': len(daemon.catalog),
            'report': report.to_dict(),
        })
    except Exception as e:
        return _from_exception(e)


async def handle_get_settings(request: web.Request) -> web.Response:
    return web.json_response(request.app['daemon'].get_settings())


async def handle_update_settings(request: web.Request) -> web.Response:
    """Merge the given settings into the current ones and save them."""
    daemon = request.app['daemon']
    try:
        settings = await daemon.update_settings(await _json_object(request))
        return web.json_response(settings)
    except Exception as e:
        return _from_exception(e)


async def handle_status(request: web.Request) -> web.Response:
    """Get daemon status."""
    daemon = request.app['daemon']
    try:
        return web.json_response(daemon.get_status())
    except Exception as e:
        logger.error(f"Status error: {e}")
        return error_response('internal_error', str(e), 500)


async def handle_shutdown(request: web.Request) -> web.Response:
    """Shutdown the daemon once the response has gone out."""
    daemon = request.app['daemon']
    logger.info("Shutdown requested via API")
    asyncio.get_running_loop().call_later(0.5, daemon.request_stop)
    return web.json_response({'status': 'shutting down'})
