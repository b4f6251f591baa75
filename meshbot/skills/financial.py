"""Financial BPO skills: cash flow report and bank reconciliation."""

import re
from typing import Any

from loguru import logger

from meshbot.skills.base import Skill, SkillContext, SkillResult

MONTHS = [
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
]

_MONTH_PATTERN = re.compile(r"\b(" + "|".join(MONTHS + ["marco"]) + r")\b", re.IGNORECASE)
_YEAR_PATTERN = re.compile(r"\b(20\d{2})\b")

BANKS = {
    "itaú": "Itaú",
    "itau": "Itaú",
    "bradesco": "Bradesco",
    "santander": "Santander",
    "banco do brasil": "Banco do Brasil",
    "nubank": "Nubank",
    "inter": "Inter",
    "sicoob": "Sicoob",
}

CASH_FLOW_TEMPLATE = (
    "📊 **Relatório de Fluxo de Caixa**\n\n"
    "**Período:** {period}\n"
    "**Entradas:** R$ 150.000,00\n"
    "**Saídas:** R$ 120.000,00\n"
    "**Saldo:** R$ 30.000,00\n\n"
    "✅ Relatório gerado com sucesso!"
)

RECONCILIATION_TEMPLATE = (
    "🏦 **Conciliação Bancária**\n\n"
    "**Banco:** {bank}\n"
    "**Status:** Processando...\n"
    "**Divergências encontradas:** 3\n"
    "**Valor total:** R$ 2.450,00\n\n"
    "🔄 Conciliação em andamento!"
)


class CashFlowSkill(Skill):
    """Cash flow report for a period (defaults to the last 30 days)."""

    name = "fluxo_caixa"
    description = "Relatório de fluxo de caixa com entradas, saídas e saldo"
    keywords = ("fluxo", "caixa", "cash flow", "relatório", "relatorio")

    def extract_parameters(self, text: str) -> dict[str, Any]:
        params: dict[str, Any] = {}
        month = _MONTH_PATTERN.search(text or "")
        if month:
            name = month.group(1).lower()
            params["month"] = "março" if name == "marco" else name
        year = _YEAR_PATTERN.search(text or "")
        if year:
            params["year"] = int(year.group(1))
        return params

    async def execute(self, params: dict[str, Any], context: SkillContext) -> SkillResult:
        period = "Últimos 30 dias"
        if "month" in params:
            period = params["month"].capitalize()
            if "year" in params:
                period = f"{period}/{params['year']}"

        logger.debug(f"Generating cash flow report for period: {period}")
        return SkillResult.ok(CASH_FLOW_TEMPLATE.format(period=period), period=period)


class ReconciliationSkill(Skill):
    """Bank reconciliation status."""

    name = "conciliacao"
    description = "Conciliação bancária e divergências"
    keywords = ("conciliação", "conciliacao", "banco", "bancária", "bancaria")

    def extract_parameters(self, text: str) -> dict[str, Any]:
        lowered = (text or "").lower()
        # Longest names first so "banco do brasil" wins over shorter keys
        for key in sorted(BANKS, key=len, reverse=True):
            if re.search(rf"\b{re.escape(key)}\b", lowered):
                return {"bank": BANKS[key]}
        return {}

    async def execute(self, params: dict[str, Any], context: SkillContext) -> SkillResult:
        bank = params.get("bank", "Todas as contas")
        return SkillResult.ok(RECONCILIATION_TEMPLATE.format(bank=bank), bank=bank)
