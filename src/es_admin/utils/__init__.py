# ABOUTME: Utilities package initialization for the Elasticsearch admin client
# ABOUTME: Contains the transport, decoding, credential, client and logging modules

"""
es_admin utilities

    - client.py: typed admin accessors
    - transport.py: request executor with token/certificate fallback
    - credentials.py: token and admin certificate resolution
    - decoding.py: response decoding and _cat table parsing
    - logging.py: structured logging with correlation IDs and audit trail
"""
