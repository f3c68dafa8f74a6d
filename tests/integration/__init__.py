"""
Integration tests for healthhub-api.

These tests talk to real services on non-default ports so they never touch
development instances:

- Redis on port 6380 (``REDIS_URL``)
- a HAPI FHIR store on port 8090 (``FHIR_SERVER_URL``)

Usage:
    docker run -d -p 6380:6379 redis:7
    docker run -d -p 8090:8080 -e hapi.fhir.server_address=http://localhost:8090/fhir hapiproject/hapi

    pytest -m integration
"""
