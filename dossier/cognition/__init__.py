"""LLM layer used for semantic claim matching.

Provider-agnostic client with cascading fallback:

    Ollama (local, default) → Anthropic (cloud) → Stub (testing)

Usage::

    from dossier.cognition.llm_factory import create_llm_client

    client = create_llm_client()
    response = await client.complete("Does claim A support sentence B?")
"""
