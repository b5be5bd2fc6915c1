"""
Transport of the attempt lock token.

The raw token is signed with a salt scoped to the attempt id and delivered as
an http-only cookie; API clients may echo the same signed value back in the
``X-Attempt-Lock`` header instead. A tampered or foreign credential reads as
no credential at all.
"""
from django.conf import settings
from django.core import signing


def _conf(name):
    return settings.EXAM_PLATFORM[name]


def _signer(attempt_id):
    return signing.Signer(salt=f"{_conf('LOCK_COOKIE_SALT')}:{attempt_id}")


def cookie_name(attempt_id):
    return f"{_conf('LOCK_COOKIE_PREFIX')}{attempt_id}"


def sign_lock_token(attempt_id, token):
    return _signer(attempt_id).sign(token)


def presented_lock_token(request, attempt_id):
    credential = request.META.get(_conf('LOCK_HEADER')) or request.COOKIES.get(cookie_name(attempt_id))
    if not credential:
        return None
    try:
        return _signer(attempt_id).unsign(credential)
    except signing.BadSignature:
        return None


def issue_lock_credential(response, attempt_id, token):
    credential = sign_lock_token(attempt_id, token)
    response.set_cookie(
        cookie_name(attempt_id),
        credential,
        httponly=True,
        samesite='Lax',
        secure=_conf('LOCK_COOKIE_SECURE'),
    )
    return credential


def clear_lock_credential(response, attempt_id):
    response.delete_cookie(cookie_name(attempt_id), samesite='Lax')
