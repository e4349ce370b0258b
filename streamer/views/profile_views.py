"""
Connection profile API (JSON)
- list / create / fetch / replace / delete profiles
- validate and fix a source's readiness for CDC
"""

import json
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from streamer.exceptions import (
    CDCStreamerException,
    ProfileNotFound,
    ReadinessValidationError,
    RegistrationError,
    UnsupportedEngineError,
)
from streamer.forms import ConnectionProfileForm
from streamer.replication.lifecycle import ConnectorLifecycleManager

logger = logging.getLogger(__name__)


class BadRequest(Exception):
    pass


def get_lifecycle_manager():
    return ConnectorLifecycleManager()


def _json_body(request):
    if not request.body:
        return {}
    try:
        payload = json.loads(request.body)
    except ValueError as e:
        raise BadRequest(f"Invalid JSON body: {e}")
    if not isinstance(payload, dict):
        raise BadRequest("JSON body must be an object")
    return payload


def _bound_form(payload):
    form = ConnectionProfileForm.from_payload(payload)
    if not form.is_valid():
        return form, JsonResponse({'success': False, 'error': 'Invalid connection details', 'errors': form.errors}, status=400)
    return form, None


def error_response(e):
    """Map streamer exceptions to JSON error responses"""
    if isinstance(e, BadRequest):
        return JsonResponse({'success': False, 'error': str(e)}, status=400)
    if isinstance(e, ProfileNotFound):
        return JsonResponse({'success': False, 'error': str(e)}, status=404)
    if isinstance(e, UnsupportedEngineError):
        return JsonResponse({'success': False, 'error': str(e)}, status=400)
    if isinstance(e, ReadinessValidationError):
        return JsonResponse({
            'success': False,
            'error': str(e),
            'validation': e.report.to_dict(),
            'can_fix': e.report.can_fix,
        }, status=422)
    if isinstance(e, RegistrationError):
        return JsonResponse({
            'success': False,
            'error': e.cause,
            'kind': e.kind,
            'details': e.raw_error,
        }, status=502)

    logger.error(f'Unhandled streamer error: {e}', exc_info=True)
    return JsonResponse({'success': False, 'error': str(e)}, status=500)


# ========================================
# Profiles
# ========================================

@csrf_exempt
@require_http_methods(['GET', 'POST'])
def profile_collection(request):
    """GET: list profiles. POST: validate, register and persist a new profile."""
    manager = get_lifecycle_manager()
    try:
        if request.method == 'GET':
            profiles = manager.list_profiles()
            return JsonResponse({'success': True, 'profiles': [p.to_dict() for p in profiles]})

        form, invalid = _bound_form(_json_body(request))
        if invalid:
            return invalid

        result = manager.save_profile(form.to_profile())
        return JsonResponse({
            'success': True,
            'action': result.action,
            'profile': result.profile.to_dict(),
            'validation': result.report.to_dict(),
        }, status=201)
    except (BadRequest, CDCStreamerException) as e:
        return error_response(e)


@csrf_exempt
@require_http_methods(['GET', 'PUT', 'DELETE'])
def profile_detail(request, profile_id):
    """GET: fetch. PUT: full replacement (re-registers the connector). DELETE: remove."""
    manager = get_lifecycle_manager()
    try:
        if request.method == 'GET':
            return JsonResponse({'success': True, 'profile': manager.get_profile(profile_id).to_dict()})

        if request.method == 'DELETE':
            removal = manager.delete_profile(profile_id)
            body = {
                'success': True,
                'profile_id': removal.profile_id,
                'connector_unregistered': removal.unregistered,
            }
            if not removal.unregistered:
                body['warning'] = f"Profile deleted but connector removal failed: {removal.error}"
            return JsonResponse(body)

        existing = manager.get_profile(profile_id)
        form, invalid = _bound_form(_json_body(request))
        if invalid:
            return invalid

        result = manager.save_profile(form.to_profile(existing.pk))
        return JsonResponse({
            'success': True,
            'action': result.action,
            'profile': result.profile.to_dict(),
            'validation': result.report.to_dict(),
        })
    except (BadRequest, CDCStreamerException) as e:
        return error_response(e)


# ========================================
# Readiness
# ========================================

def _profile_from_request(manager, payload):
    """A stored profile by `profile_id`, or an unsaved one from connection fields"""
    if payload.get('profile_id'):
        return manager.get_profile(payload['profile_id']), None
    form, invalid = _bound_form(payload)
    if invalid:
        return None, invalid
    return form.to_profile(), None


@csrf_exempt
@require_http_methods(['POST'])
def validate_connection(request):
    """Run every readiness check against the source database."""
    manager = get_lifecycle_manager()
    try:
        profile, invalid = _profile_from_request(manager, _json_body(request))
        if invalid:
            return invalid
        report = manager.validate_profile(profile)
        return JsonResponse({'success': True, 'validation': report.to_dict()})
    except (BadRequest, CDCStreamerException) as e:
        return error_response(e)


@csrf_exempt
@require_http_methods(['POST'])
def fix_connection(request):
    """Apply corrective settings for failing checks, then re-validate."""
    manager = get_lifecycle_manager()
    try:
        profile, invalid = _profile_from_request(manager, _json_body(request))
        if invalid:
            return invalid
        report = manager.fix_profile(profile)
        return JsonResponse({'success': True, 'validation': report.to_dict()})
    except (BadRequest, CDCStreamerException) as e:
        return error_response(e)
