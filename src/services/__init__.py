"""
Services Layer for the Submission Lifecycle Engine.

Submodules are imported directly (e.g. ``src.services.lifecycle_orchestrator``)
so that the bundle package stays importable from the gateways without pulling
in the orchestrator.
"""
