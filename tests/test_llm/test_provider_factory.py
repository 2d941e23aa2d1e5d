import pytest

from corex_agent.llm import OllamaProvider, OpenAICompatibleProvider, create_provider


@pytest.mark.parametrize("name", ["openai_compatible", "openai", "lmstudio", "llamacpp", "vllm", " LMStudio "])
def test_create_provider_openai_compatible_aliases(name: str):
    provider = create_provider(provider=name, model="local-model")

    assert isinstance(provider, OpenAICompatibleProvider)
    assert provider.base_url == "http://127.0.0.1:1234/v1"


def test_create_provider_ollama_default_url():
    provider = create_provider(provider="ollama", model="llama3.2")

    assert isinstance(provider, OllamaProvider)
    assert provider.base_url == "http://127.0.0.1:11434"


def test_create_provider_strips_trailing_slash():
    provider = create_provider(provider="openai_compatible", model="m", base_url="http://gpu-box:8000/v1/")

    assert provider.base_url == "http://gpu-box:8000/v1"


def test_create_provider_unknown_name():
    with pytest.raises(ValueError):
        create_provider(provider="carrier-pigeon", model="m")
