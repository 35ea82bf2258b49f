"""
Campus Portal service package.

The portal answers campus questions through a chain of hosted language
models and serves events, notices and registrations kept in a Google
spreadsheet:
- Chat: site-restricted search context + sequential provider fallback
- Data: a row-oriented spreadsheet store authenticated with a service account
- Admin: API-key or signed-session access to dashboards and content tools
- Rate limiting: fixed windows per endpoint class and client address

Structure:
- app.main: FastAPI app, routes, and dependency wiring.
- app.auth: Service-account token flow and admin authentication.
- app.adapters: HTTP clients for the spreadsheet, search and model APIs.
- app.domain: Table schemas, records, repositories and workflows.
- app.orchestration: Prompting, provider fallback and answer rendering.
- app.ratelimit: Fixed-window limiter and FastAPI dependency.
"""
