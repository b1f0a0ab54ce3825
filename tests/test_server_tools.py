from __future__ import annotations

import base64

import pytest
from fastmcp import Client

from _util import BAD_CERT_BLOCK, key_pem, make_key, make_pair
from certvault import server
from certvault.common import pkcs12_data_uri
from certvault.formats import pkcs12
from certvault.store import InMemoryArchiveStore


@pytest.fixture
def store():
    s = InMemoryArchiveStore()
    server.use_store(s)
    yield s
    server.use_store(InMemoryArchiveStore())


@pytest.mark.asyncio
async def test_submit_list_export_delete(store):
    cpem, kpem, _, _ = make_pair("shop.example.com")
    async with Client(server.mcp) as client:
        res = await client.call_tool(
            "archive_submit",
            {"owner_id": "u-1", "client_name": "Acme", "cert_pem": cpem, "key_pem": kpem, "pfx_password": "hunter2"},
        )
        out = res.data
        assert out["errors"] == []
        assert [r["type"] for r in out["records"]] == ["PEM", "KEY", "PFX"]
        assert all("content" not in r for r in out["records"])
        assert out["records"][0]["file_name"] == "certificate.pem"
        assert out["records"][1]["file_name"] == "private.key"

        listed = (await client.call_tool("archive_list", {})).data["records"]
        assert len(listed) == 3
        assert {r["domain"] for r in listed} == {"shop.example.com"}

        pfx_id = out["records"][2]["id"]
        exported = (await client.call_tool("archive_export", {"record_id": pfx_id})).data
        assert exported["media_type"] == "application/x-pkcs12"
        assert exported["file_name"] == "shop.example.com.pfx"
        contents = pkcs12.open_pfx(base64.b64decode(exported["content_b64"]), "hunter2")
        assert contents.certificate.common_name == "shop.example.com"

        described = (await client.call_tool("archive_describe", {"record_id": pfx_id, "password": "hunter2"})).data
        assert described["has_key"] is True

        await client.call_tool("archive_delete", {"record_id": pfx_id})
        await client.call_tool("archive_delete", {"record_id": pfx_id})
    assert store.count() == 2


@pytest.mark.asyncio
async def test_submit_reports_typed_errors(store):
    cpem, _, _, _ = make_pair()
    async with Client(server.mcp) as client:
        out = (
            await client.call_tool(
                "archive_submit",
                {"owner_id": "u", "client_name": "Acme", "cert_pem": cpem, "key_pem": key_pem(make_key())},
            )
        ).data
        assert [r["type"] for r in out["records"]] == ["PEM", "KEY"]
        assert [e["error"] for e in out["errors"]] == ["MismatchError"]

        out = (await client.call_tool("archive_submit", {"owner_id": "u", "client_name": "Acme"})).data
        assert out["records"] == []
        assert out["errors"][0]["error"] == "MissingRequiredInputError"
        assert out["errors"][0]["field"] == "files"

        out = (
            await client.call_tool(
                "archive_submit",
                {"owner_id": "u", "client_name": "Acme", "cert_pem": cpem, "expiration_date": "31/12/2030"},
            )
        ).data
        assert out["errors"][0]["error"] == "InvalidDate"
    assert store.count() == 2


@pytest.mark.asyncio
async def test_search_and_unknown_ids(store):
    async with Client(server.mcp) as client:
        for client_name, cn in (("Acme", "shop.acme.com"), ("Globex", "api.globex.io")):
            cpem, _, _, _ = make_pair(cn)
            await client.call_tool("archive_submit", {"owner_id": "u", "client_name": client_name, "cert_pem": cpem})

        hits = (await client.call_tool("archive_search", {"term": "GLOBEX"})).data["records"]
        assert [h["client_name"] for h in hits] == ["Globex"]
        assert len((await client.call_tool("archive_search", {})).data["records"]) == 2

        assert (await client.call_tool("archive_export", {"record_id": "nope"})).data["error"] == "NotFound"
        assert (await client.call_tool("archive_describe", {"record_id": "nope"})).data["error"] == "NotFound"


@pytest.mark.asyncio
async def test_pfx_build_and_inspect():
    cpem, kpem, _, _ = make_pair("api.example.com", days=200)
    async with Client(server.mcp) as client:
        built = (await client.call_tool("pfx_build", {"cert_pem": cpem, "key_pem": kpem, "password": "hunter2"})).data
        assert built["password_strength"] == 40
        assert built["password_label"] == "medium"

        info = (
            await client.call_tool("pfx_inspect", {"content_b64": built["content_b64"], "password": "hunter2"})
        ).data
        assert info["well_formed"] is True
        assert info["friendly_name"] == "CertVault-Bundle"
        assert info["x509"]["subject_cn"] == "api.example.com"

        der = base64.b64decode(built["content_b64"])
        via_uri = (await client.call_tool("pfx_inspect", {"content_b64": pkcs12_data_uri(der), "password": "hunter2"})).data
        assert via_uri["digest_sha256"] == info["digest_sha256"]

        bad = (await client.call_tool("pfx_inspect", {"content_b64": "***"})).data
        assert bad["error"] == "InvalidFormat"

        mismatch = (
            await client.call_tool("pfx_build", {"cert_pem": cpem, "key_pem": key_pem(make_key()), "password": "x"})
        ).data
        assert mismatch["error"] == "MismatchError"


@pytest.mark.asyncio
async def test_submit_surfaces_upload_error_behind_missing_domain(store):
    _, kpem, _, _ = make_pair()
    async with Client(server.mcp) as client:
        out = (
            await client.call_tool(
                "archive_submit",
                {"owner_id": "u", "client_name": "Acme", "cert_pem": BAD_CERT_BLOCK, "key_pem": kpem},
            )
        ).data
    assert out["records"] == []
    err = out["errors"][0]
    assert err["error"] == "MissingRequiredInputError"
    assert err["field"] == "domain"
    assert [(c["error"], c["slot"]) for c in err["causes"]] == [("ParseError", "cert")]
    assert store.count() == 0
