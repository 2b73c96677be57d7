"""Core progression primitives (engine, achievements, session gate, timers, events).

Kept free of FastAPI concerns so it can be driven by API routes, scripts, and tests alike.
"""
