from __future__ import annotations

from fastapi import APIRouter
from fastapi.testclient import TestClient

from serverkit.app import DocsOptions, HttpsRedirectApp, alt_svc_value, get_root_router
from serverkit.app.api import router as health_router
from serverkit.app.dependencies import SettingsDep
from serverkit.domain.models import DeploymentVariant, ServerRuntimeState

items = APIRouter()


@items.get("/items")
async def list_items(settings: SettingsDep) -> dict:
    return {"app": settings.app_name}


def _state(variant: DeploymentVariant = DeploymentVariant.LOCALHOST_HTTP) -> ServerRuntimeState:
    return ServerRuntimeState(variant=variant)


def test_settings_and_state_are_injected(make_settings):
    settings = make_settings().model_copy(update={"app_name": "billing"})
    app = get_root_router(_state(), settings).include_router(items).include_router(
        health_router).build()

    client = TestClient(app)

    assert client.get("/items").json() == {"app": "billing"}
    health = client.get("/health").json()
    assert health["name"] == "billing"
    assert health["variant"] == "LocalhostHttp"


def test_docs_disabled_by_default(make_settings):
    app = get_root_router(_state(), make_settings()).build()

    client = TestClient(app)

    assert client.get("/docs").status_code == 404
    assert client.get("/openapi.json").status_code == 404


def test_swagger_mounted_at_configured_address(make_settings):
    settings = make_settings()
    builder = get_root_router(_state(), settings).include_router(items)
    builder.with_docs(DocsOptions("Billing", "1.2", "/api/docs", "SwaggerUI"))

    client = TestClient(builder.build())

    assert client.get("/api/docs").status_code == 200
    schema = client.get("/api/docs/openapi.json").json()
    assert schema["info"] == {"title": "Billing", "version": "1.2"}
    assert schema["components"]["securitySchemes"]["bearer"]["scheme"] == "bearer"
    assert "/items" in schema["paths"]


def test_redoc_frontend(make_settings):
    builder = get_root_router(_state(), make_settings())
    builder.with_docs(DocsOptions("Billing", "1.2", "/api", "ReDoc"))

    client = TestClient(builder.build())

    assert "redoc" in client.get("/api").text.lower()


def test_scalar_frontend(make_settings):
    builder = get_root_router(_state(), make_settings()).include_router(items)
    builder.with_docs(DocsOptions("Billing", "1.2", "/api", "Scalar"))

    client = TestClient(builder.build())
    page = client.get("/api")

    assert page.status_code == 200
    assert "Billing - API @ Scalar" in page.text
    assert "/api/openapi.json" in page.text
    assert "/api" not in client.get("/api/openapi.json").json()["paths"]


def test_unknown_frontend_serves_json_only(make_settings):
    builder = get_root_router(_state(), make_settings())
    builder.with_docs(DocsOptions("Billing", "1.2", "/api", "Stoplight"))

    client = TestClient(builder.build())

    assert client.get("/api").status_code == 404
    assert client.get("/api/openapi.json").status_code == 200


def test_docs_options_from_settings(make_settings):
    settings = make_settings(
        allow_oapi_access=True,
        oapi_name="Billing",
        oapi_ver="2",
        oapi_api_addr="/docs",
        oapi_frontend_type="SwaggerUI",
    )

    docs = DocsOptions.from_settings(settings)

    assert docs.openapi_url == "/docs/openapi.json"
    assert docs.frontend == "SwaggerUI"


def test_cors_with_specific_origin_allows_credentials(make_settings):
    builder = get_root_router(_state(), make_settings()).include_router(items)
    builder.with_cors("https://app.example.com")

    response = TestClient(builder.build()).options(
        "/items",
        headers={
            "Origin": "https://app.example.com",
            "Access-Control-Request-Method": "PATCH",
        },
    )

    assert response.headers["access-control-allow-origin"] == "https://app.example.com"
    assert response.headers["access-control-allow-credentials"] == "true"
    assert "PATCH" in response.headers["access-control-allow-methods"]


def test_cors_wildcard_disables_credentials(make_settings):
    builder = get_root_router(_state(), make_settings()).include_router(items)
    builder.with_cors("*")

    response = TestClient(builder.build()).get(
        "/items", headers={"Origin": "https://other.example.com"})

    assert response.headers["access-control-allow-origin"] == "*"
    assert "access-control-allow-credentials" not in response.headers


def test_alt_svc_only_for_quic_variants(make_settings):
    settings = make_settings(server_port=8443)
    quic = get_root_router(_state(DeploymentVariant.STATIC_TLS_QUIC), settings).include_router(
        items).build()
    tls = get_root_router(_state(DeploymentVariant.STATIC_TLS), settings).include_router(
        items).build()

    assert TestClient(quic).get("/items").headers["alt-svc"] == 'h3=":8443"; ma=2592000'
    assert "alt-svc" not in TestClient(tls).get("/items").headers


def test_alt_svc_value():
    assert alt_svc_value(443) == 'h3=":443"; ma=2592000'


def test_https_redirect_keeps_path_and_query():
    client = TestClient(HttpsRedirectApp(8443), base_url="http://example.com")

    response = client.get("/login?next=/home", follow_redirects=False)

    assert response.status_code == 308
    assert response.headers["location"] == "https://example.com:8443/login?next=/home"


def test_https_redirect_omits_default_port():
    client = TestClient(HttpsRedirectApp(443), base_url="http://example.com:8080")

    response = client.get("/", follow_redirects=False)

    assert response.headers["location"] == "https://example.com/"


def test_alt_svc_uses_bound_quic_port_when_unconfigured(make_settings):
    settings = make_settings(server_port=0)
    app = get_root_router(_state(DeploymentVariant.STATIC_TLS_QUIC), settings).include_router(
        items).build()
    client = TestClient(app, base_url="https://testserver:9000")

    assert client.get("/items").headers["alt-svc"] == 'h3=":9000"; ma=2592000'

    app.state.quic_port = 9443
    assert client.get("/items").headers["alt-svc"] == 'h3=":9443"; ma=2592000'


def test_copy_leaves_the_original_builder_untouched(make_settings):
    builder = get_root_router(_state(), make_settings()).include_router(items)

    finished = builder.copy().with_cors("*").with_docs(DocsOptions("Billing", "1", "/api"))

    assert len(finished.build().user_middleware) == 1
    assert builder.build().user_middleware == []
    assert builder.build().openapi_url is None
