"""
Persona Council -- summon AI personas and run them as a collaborating team.

Usage:
    from persona_council.bootstrap import build_service

    service = build_service()
    response = await service.start_collaboration("Should we rewrite the billing service?")
    print(response.text)
"""

__version__ = "0.1.0"
