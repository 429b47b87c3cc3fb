"""
Core domain modules: knowledge base, signals, triggers, resolution, LLM.
"""
