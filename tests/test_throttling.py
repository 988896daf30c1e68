from types import SimpleNamespace

import pytest
from django.core.cache import cache
from rest_framework.test import APIRequestFactory

from apps.ai.throttling import AiRateThrottle, AiReplyThrottle, AiSuggestThrottle

from conftest import TENANT_ID


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


def request_for(user):
    request = APIRequestFactory().post("/api/ai/reply/")
    request.user = user
    return request


def user(pk=1, tenant_id=TENANT_ID):
    return SimpleNamespace(pk=pk, tenant_id=tenant_id, is_authenticated=True)


def test_blocks_after_rate_and_reports_wait(settings):
    settings.AI_REPLY_RATE_PER_MINUTE = 2
    request = request_for(user())

    allowed = [AiReplyThrottle().allow_request(request, None) for _ in range(3)]

    assert allowed == [True, True, False]
    throttle = AiReplyThrottle()
    assert throttle.allow_request(request, None) is False
    assert 0 <= throttle.wait() <= 60


def test_scopes_and_users_have_separate_buckets(settings):
    settings.AI_REPLY_RATE_PER_MINUTE = 1
    settings.AI_SUGGEST_RATE_PER_MINUTE = 1
    first = request_for(user(pk=1))
    second = request_for(user(pk=2))

    assert AiReplyThrottle().allow_request(first, None) is True
    assert AiReplyThrottle().allow_request(first, None) is False
    assert AiSuggestThrottle().allow_request(first, None) is True
    assert AiReplyThrottle().allow_request(second, None) is True


def test_anonymous_requests_are_not_counted(settings):
    settings.AI_REPLY_RATE_PER_MINUTE = 0
    anonymous = SimpleNamespace(is_authenticated=False)

    assert AiReplyThrottle().allow_request(request_for(anonymous), None) is True


def test_rate_falls_back_to_scope_default(settings):
    del settings.AI_SUGGEST_RATE_PER_MINUTE

    assert AiSuggestThrottle().rate == 30
    assert AiRateThrottle.for_scope("reply").scope == "reply"
