"""auth/ -- Authentication and authorization package for SensorHub.

Layer rule: auth/ imports from core/ (config, errors) and reads telemetry/
only for API-key lookup and the account-deletion cascade.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
