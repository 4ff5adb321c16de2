import json
from unittest.mock import MagicMock

import pytest

from scoring import ai_client
from scoring.ai_client import GeminiClassifier
from scoring.ai_response import Ok, ParseError

REPLY = json.dumps({'factors': {
    'documentationQuality': 80,
    'transparencyIndicators': 70,
    'securityDocumentation': 90,
    'communityEngagement': 60,
    'technicalImplementation': 75,
}})


@pytest.fixture
def fake_genai(monkeypatch):
    genai = MagicMock()
    monkeypatch.setattr(ai_client, 'genai', genai)
    monkeypatch.setattr(ai_client, 'GenerationConfig', MagicMock())
    monkeypatch.setattr(ai_client, 'GOOGLE_AVAILABLE', True)
    return genai


def make_classifier(sleeps):
    return GeminiClassifier(api_key='test-key', sleep=sleeps.append)


def test_unavailable_without_key(fake_genai):
    classifier = GeminiClassifier(api_key=None)
    assert not classifier.available
    outcome = classifier.classify('prompt')
    assert isinstance(outcome, ParseError)
    assert outcome.reason.startswith('AI unavailable')
    fake_genai.GenerativeModel.assert_not_called()


def test_unavailable_without_package(monkeypatch):
    monkeypatch.setattr(ai_client, 'GOOGLE_AVAILABLE', False)
    assert not GeminiClassifier(api_key='test-key').available


def test_success(fake_genai):
    fake_genai.GenerativeModel.return_value.generate_content.return_value = MagicMock(text=REPLY)
    sleeps = []
    outcome = make_classifier(sleeps).classify('prompt')

    assert isinstance(outcome, Ok)
    assert outcome.result.factors.security_documentation == 90
    fake_genai.configure.assert_called_once_with(api_key='test-key')
    assert sleeps == []


def test_retries_with_backoff(fake_genai):
    model = fake_genai.GenerativeModel.return_value
    model.generate_content.side_effect = [RuntimeError('quota'), MagicMock(text=REPLY)]
    sleeps = []
    outcome = make_classifier(sleeps).classify('prompt')

    assert isinstance(outcome, Ok)
    assert model.generate_content.call_count == 2
    assert sleeps == [1]


def test_exhausted_retries_become_parse_error(fake_genai):
    model = fake_genai.GenerativeModel.return_value
    model.generate_content.side_effect = RuntimeError('service unavailable')
    sleeps = []
    outcome = make_classifier(sleeps).classify('prompt')

    assert isinstance(outcome, ParseError)
    assert outcome.reason == 'Gemini API failed after 3 attempts: service unavailable'
    assert sleeps == [1, 2]


def test_unparseable_reply(fake_genai):
    fake_genai.GenerativeModel.return_value.generate_content.return_value = MagicMock(text='no idea')
    outcome = make_classifier([]).classify('prompt')
    assert isinstance(outcome, ParseError)
