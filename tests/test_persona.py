"""
Tests for persona loading and validation.
"""

import dataclasses
import json
import pytest
from unittest.mock import patch

from persona_voice.core.emotion import GUIDED_EMOTIONS
from persona_voice.core.persona import (
    DEFAULT_RESPONSE_PREFIXES,
    PersonaConfig,
    PersonaRegistry,
    load_persona,
    load_personas,
)


def _persona_doc(**overrides):
    doc = {
        "id": "Test",
        "name": "Test",
        "system_prompt": "You are a test persona.",
        "voice": "en-US-JennyNeural",
        "emotion_guidance": {e: f"The user sounds {e}." for e in GUIDED_EMOTIONS},
    }
    doc.update(overrides)
    return doc


class TestBundledPersonas:
    """The shipped Adina and Rafa personas."""

    def test_both_personas_load(self, personas):
        assert sorted(personas.ids) == ["adina", "rafa"]

    def test_every_persona_has_guidance_for_each_emotion(self, personas):
        for persona in personas:
            for emotion in GUIDED_EMOTIONS:
                assert persona.emotion_guidance[emotion]

    def test_personas_have_distinct_voices(self, adina, rafa):
        assert adina.voice != rafa.voice
        assert adina.tone != rafa.tone

    def test_rafa_strips_own_name(self, rafa):
        assert "Rafa:" in rafa.response_prefixes
        assert "Assistant:" in rafa.response_prefixes

    def test_lookup_is_case_insensitive(self, personas):
        assert personas.get("RAFA").id == "rafa"
        assert "Adina" in personas
        assert personas.get("unknown") is None
        assert personas.get(None) is None


class TestPersonaValidation:
    """PersonaConfig.from_dict validation."""

    def test_minimal_document_gets_defaults(self):
        persona = PersonaConfig.from_dict(_persona_doc())
        assert persona.id == "test"
        assert persona.response_prefixes == DEFAULT_RESPONSE_PREFIXES
        assert persona.tone == ""
        assert persona.stop == ()

    def test_missing_required_field(self):
        doc = _persona_doc()
        del doc["system_prompt"]
        with pytest.raises(ValueError, match="system_prompt"):
            PersonaConfig.from_dict(doc)

    def test_missing_guidance(self):
        guidance = {e: "x" for e in GUIDED_EMOTIONS if e != "hopeful"}
        with pytest.raises(ValueError, match="hopeful"):
            PersonaConfig.from_dict(_persona_doc(emotion_guidance=guidance))

    def test_temperature_out_of_range(self):
        with pytest.raises(ValueError, match="temperature"):
            PersonaConfig.from_dict(_persona_doc(temperature=3.5))

    def test_max_tokens_must_be_positive(self):
        with pytest.raises(ValueError, match="max_tokens"):
            PersonaConfig.from_dict(_persona_doc(max_tokens=0))

    def test_environment_voice_override(self):
        from persona_voice.config import settings

        with patch.object(settings.speech, "voice_rafa", "en-US-DavisNeural"):
            persona = PersonaConfig.from_dict(_persona_doc(id="rafa"))
        assert persona.voice == "en-US-DavisNeural"

    def test_config_is_frozen(self):
        persona = PersonaConfig.from_dict(_persona_doc())
        with pytest.raises(dataclasses.FrozenInstanceError):
            persona.name = "Changed"


class TestPersonaLoading:
    """Loading personas from disk."""

    def test_load_single_file(self, tmp_path):
        path = tmp_path / "test.json"
        path.write_text(json.dumps(_persona_doc()), encoding="utf-8")
        assert load_persona(path).id == "test"

    def test_load_directory(self, tmp_path):
        for pid in ("one", "two"):
            (tmp_path / f"{pid}.json").write_text(json.dumps(_persona_doc(id=pid)), encoding="utf-8")
        registry = load_personas(tmp_path)
        assert registry.ids == ["one", "two"]
        assert len(registry) == 2

    def test_empty_directory(self, tmp_path):
        with pytest.raises(ValueError, match="No persona files"):
            load_personas(tmp_path)

    def test_duplicate_ids(self):
        persona = PersonaConfig.from_dict(_persona_doc())
        with pytest.raises(ValueError, match="Duplicate"):
            PersonaRegistry([persona, persona])
