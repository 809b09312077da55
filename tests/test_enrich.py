from __future__ import annotations

import pytest

from conftest import GOOD_AI_OUTPUT, FakeChatClient
from feed_engine.enrich import SECTION_TITLES, AIEnhancer, Enricher, TemplateEnhancer
from feed_engine.errors import AIServiceError


TITLE = "Chauffeur SPL"
COMPANY = "Transports Martin"
DESCRIPTION = "<p>Permis CE exigé.</p><p>Tournées régionales en semi-remorque.</p>"


class TestTemplate:
    def test_deterministic_seven_section_body(self, template_enricher):
        first = template_enricher.enrich(TITLE, COMPANY, DESCRIPTION)
        second = template_enricher.enrich(TITLE, COMPANY, DESCRIPTION)

        assert first == second
        assert first.used_ai is False
        assert first.html.count("<section>") == 7
        for heading in SECTION_TITLES["fr"]:
            assert f"<h2>{heading}</h2>" in first.html
        assert "<p>Permis CE exigé.</p>" in first.html
        assert first.tags[-1] == "conducteur routier"

    def test_summary_is_whitespace_collapsed_and_capped(self):
        enhancer = TemplateEnhancer("conducteur routier")
        words = " ".join(f"mot{i}" for i in range(100))
        content = enhancer.enhance(TITLE, COMPANY, f"<p>{words}</p>")
        assert content.short.endswith("…")
        assert len(content.short.split()) == 45

    def test_first_section_keeps_six_escaped_paragraphs(self):
        enhancer = TemplateEnhancer("conducteur routier")
        html = "".join(f"<p>ligne {i} & co</p>" for i in range(10))
        body = enhancer.enhance(TITLE, COMPANY, html).html
        assert "<p>ligne 5 &amp; co</p>" in body
        assert "ligne 6" not in body

    def test_empty_description_uses_placeholder(self):
        body = TemplateEnhancer("conducteur routier").enhance(TITLE, COMPANY, "").html
        assert "Détails fournis par l’employeur." in body
        assert body.count("<section>") == 7

    def test_english_headings(self):
        body = TemplateEnhancer("truck driver", lang="en").enhance("Driver", "", "<p>Haul</p>").html
        assert "<h2>About the role</h2>" in body
        assert "<h2>How to apply</h2>" in body

    def test_unknown_language_falls_back_to_french(self):
        body = TemplateEnhancer("conducteur routier", lang="xx").enhance(TITLE, "", "").html
        assert "<h2>Candidater</h2>" in body


class TestAIPath:
    def test_well_formed_output(self, make_ai_enricher):
        content = make_ai_enricher().enrich(TITLE, COMPANY, DESCRIPTION, use_ai=True)

        assert content.used_ai is True
        assert content.short.startswith("Conduisez un semi-remorque")
        assert "<h2>Responsabilités</h2>" in content.html
        assert content.tags == ["spl", "semi-remorque", "régional"]

    def test_prompt_carries_posting_and_section_headings(self):
        client = FakeChatClient()
        AIEnhancer(client, "conducteur routier").enhance(TITLE, "", DESCRIPTION)

        system, user = client.calls[0]
        assert "conducteur routier" in system
        assert "7) Candidater" in system
        assert "Job: Chauffeur SPL" in user
        assert "Company: N/A" in user
        assert "Permis CE exigé." in user

    def test_use_ai_false_skips_backend(self, settings):
        client = FakeChatClient()
        enricher = Enricher.from_settings(settings, client=client)
        content = enricher.enrich(TITLE, COMPANY, DESCRIPTION, use_ai=False)
        assert content.used_ai is False
        assert client.calls == []

    def test_backend_failure_equals_template(self, make_ai_enricher, template_enricher, ai_failure):
        degraded = make_ai_enricher(error=ai_failure).enrich(TITLE, COMPANY, DESCRIPTION, use_ai=True)
        assert degraded == template_enricher.enrich(TITLE, COMPANY, DESCRIPTION)
        assert degraded.used_ai is False

    def test_unexpected_exception_also_degrades(self, make_ai_enricher, template_enricher):
        degraded = make_ai_enricher(error=RuntimeError("boom")).enrich(TITLE, COMPANY, DESCRIPTION, use_ai=True)
        assert degraded == template_enricher.enrich(TITLE, COMPANY, DESCRIPTION)

    def test_output_without_markers_degrades(self, make_ai_enricher, template_enricher):
        for output in ("", "   ", "Désolé, je ne peux pas répondre."):
            degraded = make_ai_enricher(outputs=[output]).enrich(TITLE, COMPANY, DESCRIPTION, use_ai=True)
            assert degraded == template_enricher.enrich(TITLE, COMPANY, DESCRIPTION)

    def test_missing_html_block_becomes_single_section(self):
        output = "===DESCRIPTION===\nRésumé court du poste.\n===TAGS===\n[\"spl\", \"fimo\"]"
        content = AIEnhancer(FakeChatClient(), "conducteur routier").parse(output, TITLE, COMPANY, DESCRIPTION)

        assert content.used_ai is True
        assert content.html.startswith("<section><h2>À propos du poste</h2><p>")
        assert content.tags == ["spl", "fimo"]

    def test_short_html_block_is_replaced(self):
        output = "===DESCRIPTION===\nRésumé.\n===HTML===\n<p>x</p>\n===TAGS===\n[]"
        content = AIEnhancer(FakeChatClient(), "conducteur routier").parse(output, TITLE, COMPANY, DESCRIPTION)
        assert content.html == "<section><h2>À propos du poste</h2><p>Résumé.</p></section>"

    def test_invalid_tags_fall_back_to_keyword_tags(self):
        output = GOOD_AI_OUTPUT.split("===TAGS===")[0] + "===TAGS===\nspl, fimo"
        content = AIEnhancer(FakeChatClient(), "conducteur routier").parse(output, TITLE, COMPANY, DESCRIPTION)
        assert content.tags[-1] == "conducteur routier"
        assert "permis ce" in content.tags

    def test_tags_are_capped_at_eight(self):
        tags = ", ".join(f'"t{i}"' for i in range(12))
        output = GOOD_AI_OUTPUT.split("===TAGS===")[0] + f"===TAGS===\n[{tags}]"
        content = AIEnhancer(FakeChatClient(), "conducteur routier").parse(output, TITLE, COMPANY, DESCRIPTION)
        assert content.tags == [f"t{i}" for i in range(8)]

    def test_html_is_stripped_of_document_wrappers_and_active_content(self):
        body = (
            "<!DOCTYPE html><html><head><title>x</title></head><body>"
            "<section><h2>À propos du poste</h2><p onclick=\"steal()\">Texte</p>"
            "<script>alert(1)</script><a href=\"javascript:alert(1)\">lien</a></section>"
            "</body></html>"
        )
        output = f"===DESCRIPTION===\nRésumé.\n===HTML===\n{body}\n===TAGS===\n[\"spl\"]"
        html = AIEnhancer(FakeChatClient(), "conducteur routier").parse(output, TITLE, COMPANY, DESCRIPTION).html

        assert html.startswith("<section>")
        for forbidden in ("<!DOCTYPE", "<html", "<body", "<title", "onclick", "<script", "javascript:"):
            assert forbidden not in html
        assert "<p>Texte</p>" in html

    def test_parse_raises_on_markerless_output(self):
        enhancer = AIEnhancer(FakeChatClient(), "conducteur routier")
        with pytest.raises(AIServiceError):
            enhancer.parse("plain prose", TITLE, COMPANY, DESCRIPTION)


def test_from_settings_without_api_key_has_no_ai(settings):
    enricher = Enricher.from_settings(settings)
    assert enricher.ai_available is False
    assert enricher.enrich(TITLE, COMPANY, DESCRIPTION, use_ai=True).used_ai is False
