from __future__ import annotations

import copy
import re

import pytest

from statement_analysis.sanitizer import (
    REDACTED,
    is_sensitive_field,
    mask_sensitive_text,
    sanitize_rows,
    scrub_embedded_pii,
)

ROWS = [
    {
        "date": "2024-01-05",
        "amount": -150.0,
        "description": "PIX ENVIADO 123.456.789-09 maria@example.com",
        "nome_titular": "Maria Silva",
        "cpf": "12345678909",
        "email": "maria.silva@gmail.com",
        "conta": 123456,
        "Agência": "01",
    },
    {
        "date": "2024-01-06",
        "amount": 5000.0,
        "description": "TED 12.345.678/0001-90 tel (11) 98765-4321",
        "Chave PIX": "123e4567-e89b-12d3-a456-426614174000",
        "Pagador": "Jo",
        "category": "Renda",
    },
]


def test_holder_name_masked_per_word() -> None:
    out = sanitize_rows([{"nome_titular": "Maria Silva"}])
    assert out[0]["nome_titular"] == "M**** S****"
    assert re.fullmatch(r"M\*+ S\*+", out[0]["nome_titular"])


def test_sanitize_is_idempotent() -> None:
    once = sanitize_rows(ROWS)
    assert sanitize_rows(once) == once


def test_inputs_are_not_mutated() -> None:
    before = copy.deepcopy(ROWS)
    sanitize_rows(ROWS)
    assert ROWS == before


def test_sensitive_fields_are_masked_or_redacted() -> None:
    first, second = sanitize_rows(ROWS)
    assert first["cpf"] == "1********"
    assert first["email"] == "m*****@***"
    assert first["conta"] == REDACTED
    assert first["Agência"] == REDACTED
    assert second["Pagador"] == REDACTED
    assert second["Chave PIX"].startswith("1")
    assert "e89b" not in second["Chave PIX"]


def test_embedded_pii_replaced_in_free_text() -> None:
    first, second = sanitize_rows(ROWS)
    assert first["description"] == "PIX ENVIADO ***.***.***-** [EMAIL]"
    assert second["description"] == "TED **.***.***/****-** tel [PHONE]"


def test_non_sensitive_values_pass_through() -> None:
    first, second = sanitize_rows(ROWS)
    assert first["amount"] == -150.0
    assert first["date"] == "2024-01-05"
    assert second["category"] == "Renda"


def test_uuid_pix_key_in_free_text() -> None:
    assert scrub_embedded_pii("chave 123e4567-e89b-12d3-a456-426614174000") == "chave [PIX_KEY]"


@pytest.mark.parametrize(
    ("name", "sensitive"),
    [
        ("CPF", True),
        ("cnpj_pagador", True),
        ("RG", True),
        ("Nome", True),
        ("Beneficiário", True),
        ("account_holder", True),
        ("Telefone", True),
        ("E-mail", True),
        ("Endereço", True),
        ("branch", True),
        ("description", False),
        ("amount", False),
        ("category", False),
        ("Cargo", False),
    ],
)
def test_field_name_sensitivity(name: str, sensitive: bool) -> None:
    assert is_sensitive_field(name) is sensitive


@pytest.mark.parametrize(
    ("raw", "masked"),
    [
        ("Maria da Silva", "M**** ** S****"),
        ("Bartholomew", "B********"),
        ("Ana", "A**"),
        ("ab", REDACTED),
        ("", REDACTED),
        ("a@b.com", "a@***"),
    ],
)
def test_mask_sensitive_text(raw: str, masked: str) -> None:
    assert mask_sensitive_text(raw) == masked
    assert mask_sensitive_text(masked) == masked
