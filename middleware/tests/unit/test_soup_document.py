import pytest

from page_translator.document.soup import STYLE_ID, SoupDocument


def _texts(document):
    return [document.get_text(h).strip() for h in document.traverse() if document.get_text(h).strip()]


@pytest.mark.unit
def test_traverse_skips_templates_and_frames_in_main_root():
    document = SoupDocument.from_html(
        "<html><body><p>Visible</p>"
        "<template><p>Inert</p></template>"
        "<iframe srcdoc='&lt;p&gt;Framed&lt;/p&gt;'></iframe>"
        "</body></html>"
    )
    roots = list(document.iter_roots())
    main_texts = [document.get_text(h) for h in document.traverse(root=roots[0])]
    assert "Visible" in main_texts
    assert "Inert" not in main_texts
    assert "Framed" not in main_texts
    assert "Framed" in _texts(document)


@pytest.mark.unit
def test_cross_origin_frame_is_skipped():
    document = SoupDocument.from_html(
        "<body><p>Main</p><iframe src='https://other.example/'></iframe></body>"
    )
    assert _texts(document) == ["Main"]


@pytest.mark.unit
def test_declarative_shadow_root_is_a_separate_root():
    document = SoupDocument.from_html(
        "<body><div><template shadowrootmode='open'><span>Shadow</span></template></div></body>"
    )
    assert "Shadow" in _texts(document)
    shadow = [h for h in document.traverse() if document.get_text(h) == "Shadow"][0]
    assert document.is_excluded(shadow) is False


@pytest.mark.unit
def test_exclusions():
    document = SoupDocument.from_html(
        "<body>"
        "<script>var a = 1;</script>"
        "<textarea>Typed</textarea>"
        "<div contenteditable='true'>Editing</div>"
        "<div hidden>Hidden</div>"
        "<div style='display: none'>Gone</div>"
        "<p>Shown</p>"
        "</body>"
    )
    accepted = [
        document.get_text(h)
        for h in document.traverse(lambda h: not document.is_excluded(h))
    ]
    assert accepted == ["Shown"]


@pytest.mark.unit
def test_set_text_keeps_handle_and_stash():
    document = SoupDocument.from_html("<body><p>Hello</p></body>")
    handle = document.traverse()[0]
    document.set_stash(handle, "Hello")
    document.set_text(handle, "Bonjour")
    assert document.get_text(handle) == "Bonjour"
    assert document.get_stash(handle) == "Hello"
    assert document.traverse()[0] is handle
    document.clear_stash(handle)
    assert document.get_stash(handle) is None


@pytest.mark.unit
def test_overlay_roundtrip_and_style():
    document = SoupDocument.from_html("<html><head></head><body><p>Hello</p></body></html>")
    handle = document.traverse()[0]
    overlay = document.create_overlay(handle, "Hello", "你好", 0)
    document.ensure_style()
    document.ensure_style()

    html = document.serialize()
    assert html.count(STYLE_ID) == 1
    assert "你好" in html
    assert document.overlay_index(overlay) == 0
    assert document.overlay_source(overlay) == "Hello"

    inner = [h for h in document.traverse() if document.in_overlay(h)]
    assert len(inner) == 2

    document.set_overlay_translation(overlay, "您好")
    assert "您好" in document.serialize()

    document.unwrap_overlay(overlay)
    document.remove_style()
    assert document.overlays() == []
    assert document.serialize() == "<html><head></head><body><p>Hello</p></body></html>"


@pytest.mark.unit
def test_frame_changes_are_written_back_on_serialize():
    document = SoupDocument.from_html('<body><iframe srcdoc="<p>Inside</p>"></iframe></body>')
    handle = [h for h in document.traverse() if document.get_text(h) == "Inside"][0]
    document.set_text(handle, "Dedans")
    assert "Dedans" in document.serialize()
