"""
Analysis Gateway
----------------
Turns a business + its nearby competitors into a structured AnalysisResult
using the Anthropic Messages API.

analyze() never raises. Any failure (transport, provider error, empty body,
non-JSON text, JSON that does not validate) yields a deterministic fallback
in the requested language. An empty competitor list skips the model call and
returns the "no direct competitors" variant.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import anthropic

from config.settings import settings
from models.schemas import (
    AnalysisResult,
    Business,
    Competitor,
    CustomerSentiment,
    MarketingStrategy,
    Swot,
    TargetAudience,
)
from services.limits import PRO_PLAN, normalize_plan

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("en", "pt", "es")
LANGUAGE_NAMES = {"en": "English", "pt": "Portuguese", "es": "Spanish"}


def fallback_language(language: Optional[str]) -> str:
    code = (language or "en").split("-")[0].lower()
    return code if code in SUPPORTED_LANGUAGES else "en"


# ─── Prompt ──────────────────────────────────────────────────────────────────

SYSTEM_PROMPT = (
    "You are a local-market strategist helping small business owners understand "
    "their competition. Respond with JSON only, no other text.\n\n"
    "Format:\n"
    "{\n"
    '  "executive_summary": "...",\n'
    '  "swot": {"strengths": [...], "weaknesses": [...], "opportunities": [...], "threats": [...]},\n'
    '  "market_trends": [...],\n'
    '  "target_audience": {"demographics": "...", "psychographics": "...", "pain_points": "..."},\n'
    '  "marketing_strategy": {"primary_channels": "...", "content_ideas": "...", "promotional_tactics": "..."},\n'
    '  "customer_sentiment": {"common_praises": [...], "recurring_complaints": [...], "unmet_needs": [...]}\n'
    "}\n\n"
    "Base every point on the competitor data you are given. Competitor reviews are "
    "the primary evidence for customer sentiment."
)


def build_prompt(business: Business, competitors: List[Competitor], language: str, plan: str) -> str:
    depth = (
        "Be thorough: 5-7 items per list and a detailed multi-paragraph executive summary."
        if normalize_plan(plan) == PRO_PLAN
        else "Be concise: 3-4 items per list and a short executive summary."
    )
    lines = [
        f"Business: {business.name}",
        f"Category: {business.category}",
        f"Address: {business.address or 'not provided'}",
        "",
        f"Nearby competitors ({len(competitors)}):",
    ]
    for i, c in enumerate(competitors, 1):
        rating = f"{c.rating}/5 ({c.rating_count or 0} ratings)" if c.rating is not None else "no rating"
        extra = ", ".join(x for x in (c.price_level, c.distance) if x)
        lines.append(f"{i}. {c.name} | {c.address} | {rating}" + (f" | {extra}" if extra else ""))
        for r in c.reviews:
            stars = f"{r.rating:g}*" if r.rating is not None else "?*"
            lines.append(f"   - [{stars}] {r.text}")
    lines += [
        "",
        depth,
        f"Write all text values in {LANGUAGE_NAMES.get(fallback_language(language), 'English')}.",
    ]
    return "\n".join(lines)


def parse_analysis(text: str) -> AnalysisResult:
    """Extract the JSON object from model text and validate it."""
    if not text or not text.strip():
        raise ValueError("Empty response from language model")
    match = re.search(r"\{.*\}", text, re.DOTALL)
    if not match:
        raise ValueError("No JSON object in language model response")
    return AnalysisResult.model_validate_json(match.group())


# ─── Gateway ─────────────────────────────────────────────────────────────────


class AnalysisGateway:
    """
    Pass `client` to inject an object exposing `messages.create(...)` as a
    coroutine (anthropic.AsyncAnthropic or a test double).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = settings.ANALYSIS_MODEL,
        max_tokens: int = settings.ANALYSIS_MAX_TOKENS,
        timeout: float = settings.ANALYSIS_TIMEOUT,
        client: Any = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        if client is None and api_key:
            client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def _complete(self, prompt: str) -> str:
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(
            getattr(block, "text", "") for block in response.content
            if getattr(block, "type", "text") == "text"
        ).strip()

    async def analyze(
        self,
        business: Business,
        competitors: List[Competitor],
        language: str = "en",
        plan: Optional[str] = None,
    ) -> AnalysisResult:
        if not competitors:
            logger.info(f"No competitors for '{business.name}', using opportunity analysis")
            return no_competitor_analysis(business, language)

        if not self.configured:
            logger.info("Language model not configured, using fallback analysis")
            return fallback_analysis(business, competitors, language)

        try:
            text = await self._complete(build_prompt(business, competitors, language, plan or ""))
            result = parse_analysis(text)
            logger.info(f"✅ Analysis for '{business.name}' ({len(competitors)} competitors)")
            return result
        except Exception as e:
            logger.warning(f"❌ Analysis failed for '{business.name}', using fallback: {e}")
            return fallback_analysis(business, competitors, language)


# ─── Fallbacks ───────────────────────────────────────────────────────────────

FALLBACK_COPY: Dict[str, Dict[str, Any]] = {
    "en": {
        "summary": (
            "We identified {count} competitor(s) near {name}. The average competitor rating is "
            "{avg}/5.0 across {reviews} total reviews. {landscape} This is a baseline analysis "
            "generated from market data; review it periodically to track changes."
        ),
        "landscape_high": "{high} competitor(s) rate 4.5 stars or more and hold strong customer loyalty.",
        "landscape_open": "No competitor rates 4.5 stars or more, leaving room to lead on customer satisfaction.",
        "swot": {
            "strengths": ["Local presence in an established market", "Ability to respond quickly to customer feedback"],
            "weaknesses": ["Limited data on your own customer perception", "Competing for attention with established names"],
            "opportunities": [
                "Win customers from lower-rated competitors",
                "Differentiate with a clear unique value proposition",
            ],
            "threats": ["Well-reviewed competitors with loyal customers", "Price pressure from nearby alternatives"],
        },
        "trends": [
            "Customers compare options through online reviews before visiting",
            "Growing demand for convenience and fast service",
        ],
        "audience": (
            "Local residents and workers within the search radius",
            "Value-conscious customers who read reviews before choosing",
            "Inconsistent service quality among existing options",
        ),
        "marketing": (
            "Google Business Profile, local social media, and community partnerships",
            "Behind-the-scenes posts, customer stories, and local event tie-ins",
            "Loyalty program and first-visit offers",
        ),
        "sentiment": (
            ["Friendly staff", "Convenient location"],
            ["Long waiting times", "Inconsistent quality"],
            ["More personalised service"],
        ),
        "none_summary": (
            "Great news! No direct competitors were found near {name}. This could indicate a market "
            "opportunity; consider widening the search radius to confirm it."
        ),
        "none_strengths": [
            "No direct competitors in the immediate area: a clear opportunity to own the local market",
        ],
        "none_opportunities": [
            "Become the default choice for local customers",
            "Build awareness before competitors arrive",
        ],
        "none_threats": ["Demand in the area is still unproven"],
        "none_trends": ["Underserved local demand"],
    },
    "pt": {
        "summary": (
            "Identificámos {count} concorrente(s) perto de {name}. A avaliação média dos concorrentes é "
            "{avg}/5.0 em {reviews} avaliações no total. {landscape} Esta é uma análise base gerada a "
            "partir de dados de mercado; reveja-a periodicamente."
        ),
        "landscape_high": "{high} concorrente(s) têm 4.5 estrelas ou mais e clientes fiéis.",
        "landscape_open": "Nenhum concorrente tem 4.5 estrelas ou mais, há espaço para liderar na satisfação do cliente.",
        "swot": {
            "strengths": ["Presença local num mercado estabelecido", "Capacidade de reagir rapidamente ao feedback"],
            "weaknesses": ["Poucos dados sobre a perceção dos seus clientes", "Concorrência com nomes já conhecidos"],
            "opportunities": [
                "Conquistar clientes de concorrentes com avaliações mais baixas",
                "Diferenciar-se com uma proposta de valor clara",
            ],
            "threats": ["Concorrentes bem avaliados com clientes fiéis", "Pressão nos preços"],
        },
        "trends": [
            "Os clientes comparam avaliações online antes de visitar",
            "Procura crescente por conveniência e rapidez",
        ],
        "audience": (
            "Residentes e trabalhadores na área de pesquisa",
            "Clientes atentos ao valor que leem avaliações",
            "Qualidade de serviço inconsistente nas opções atuais",
        ),
        "marketing": (
            "Perfil do Google, redes sociais locais e parcerias comunitárias",
            "Bastidores, histórias de clientes e eventos locais",
            "Programa de fidelização e ofertas de primeira visita",
        ),
        "sentiment": (
            ["Atendimento simpático", "Localização conveniente"],
            ["Tempos de espera longos", "Qualidade inconsistente"],
            ["Serviço mais personalizado"],
        ),
        "none_summary": (
            "Boas notícias! Não foram encontrados concorrentes diretos perto de {name}. Isto pode indicar "
            "uma oportunidade de mercado; considere alargar o raio de pesquisa para confirmar."
        ),
        "none_strengths": [
            "Sem concorrentes diretos na área imediata: uma oportunidade clara de dominar o mercado local",
        ],
        "none_opportunities": [
            "Tornar-se a escolha habitual dos clientes locais",
            "Criar notoriedade antes da chegada de concorrentes",
        ],
        "none_threats": ["A procura na zona ainda não está comprovada"],
        "none_trends": ["Procura local pouco servida"],
    },
    "es": {
        "summary": (
            "Identificamos {count} competidor(es) cerca de {name}. La valoración media de la competencia es "
            "{avg}/5.0 en {reviews} reseñas en total. {landscape} Este es un análisis base generado a partir "
            "de datos de mercado; revíselo periódicamente."
        ),
        "landscape_high": "{high} competidor(es) tienen 4.5 estrellas o más y clientes fieles.",
        "landscape_open": "Ningún competidor alcanza 4.5 estrellas, hay espacio para liderar en satisfacción.",
        "swot": {
            "strengths": ["Presencia local en un mercado establecido", "Capacidad de reaccionar rápido a las opiniones"],
            "weaknesses": ["Pocos datos sobre la percepción de sus clientes", "Competencia con nombres conocidos"],
            "opportunities": [
                "Atraer clientes de competidores peor valorados",
                "Diferenciarse con una propuesta de valor clara",
            ],
            "threats": ["Competidores bien valorados con clientes fieles", "Presión en los precios"],
        },
        "trends": [
            "Los clientes comparan reseñas en línea antes de visitar",
            "Demanda creciente de comodidad y rapidez",
        ],
        "audience": (
            "Residentes y trabajadores dentro del radio de búsqueda",
            "Clientes atentos al valor que leen reseñas",
            "Calidad de servicio irregular en las opciones actuales",
        ),
        "marketing": (
            "Perfil de Google, redes sociales locales y alianzas comunitarias",
            "Contenido entre bastidores, historias de clientes y eventos locales",
            "Programa de fidelización y ofertas de primera visita",
        ),
        "sentiment": (
            ["Personal amable", "Ubicación conveniente"],
            ["Tiempos de espera largos", "Calidad irregular"],
            ["Servicio más personalizado"],
        ),
        "none_summary": (
            "¡Buenas noticias! No se encontraron competidores directos cerca de {name}. Esto puede indicar "
            "una oportunidad de mercado; considere ampliar el radio de búsqueda para confirmarlo."
        ),
        "none_strengths": [
            "Sin competidores directos en la zona inmediata: una clara oportunidad de liderar el mercado local",
        ],
        "none_opportunities": [
            "Convertirse en la opción habitual de los clientes locales",
            "Ganar notoriedad antes de que llegue la competencia",
        ],
        "none_threats": ["La demanda en la zona aún no está probada"],
        "none_trends": ["Demanda local desatendida"],
    },
}


def _structured(copy: Dict[str, Any], summary: str, swot: Swot, trends: List[str]) -> AnalysisResult:
    demographics, psychographics, pain_points = copy["audience"]
    channels, content, tactics = copy["marketing"]
    praises, complaints, needs = copy["sentiment"]
    return AnalysisResult(
        executive_summary=summary,
        swot=swot,
        market_trends=trends,
        target_audience=TargetAudience(
            demographics=demographics, psychographics=psychographics, pain_points=pain_points
        ),
        marketing_strategy=MarketingStrategy(
            primary_channels=channels, content_ideas=content, promotional_tactics=tactics
        ),
        customer_sentiment=CustomerSentiment(
            common_praises=list(praises), recurring_complaints=list(complaints), unmet_needs=list(needs)
        ),
    )


def fallback_analysis(business: Business, competitors: List[Competitor], language: str = "en") -> AnalysisResult:
    """Generic result built from competitor stats alone."""
    copy = FALLBACK_COPY[fallback_language(language)]
    rated = [c.rating for c in competitors if c.rating is not None]
    avg = f"{sum(rated) / len(rated):.1f}" if rated else "N/A"
    total_reviews = sum(c.rating_count or 0 for c in competitors)
    high = sum(1 for r in rated if r >= 4.5)
    landscape = copy["landscape_high"].format(high=high) if high else copy["landscape_open"]

    summary = copy["summary"].format(
        count=len(competitors), name=business.name, avg=avg, reviews=total_reviews, landscape=landscape
    )
    return _structured(copy, summary, Swot(**copy["swot"]), list(copy["trends"]))


def no_competitor_analysis(business: Business, language: str = "en") -> AnalysisResult:
    copy = FALLBACK_COPY[fallback_language(language)]
    swot = Swot(
        strengths=list(copy["none_strengths"]),
        weaknesses=list(copy["swot"]["weaknesses"][:1]),
        opportunities=list(copy["none_opportunities"]),
        threats=list(copy["none_threats"]),
    )
    return _structured(copy, copy["none_summary"].format(name=business.name), swot, list(copy["none_trends"]))
