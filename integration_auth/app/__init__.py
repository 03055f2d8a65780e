"""
Integration auth application package.

- app.io_bundle: HTTP clients shared by every component.
- app.caching: Coalescing TTL cache used for keys, tokens and integrations.
- app.jwks: Key cache over the platform's JWKS discovery document.
- app.tokens: Client-credentials access token cache.
- app.validation: Token protocol (verify, mint, webhook signatures).
- app.integration: Integration record client and GraphQL access.
- app.auth: Facade wiring all of the above from settings.
- app.dependencies: FastAPI dependencies for inbound requests.

Importing this package must not perform network calls; all IO happens in
explicit calls or warm-up hooks.
"""
