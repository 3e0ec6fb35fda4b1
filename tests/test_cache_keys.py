from utils.ids import cache_doc_id, drug_norm_key, ndc_lookup_key, rxcui_details_key


def test_cache_doc_id_is_sha256_hex():
    doc_id = cache_doc_id("drug:norm:lisinopril")
    assert len(doc_id) == 64
    assert "/" not in doc_id
    assert doc_id == cache_doc_id("drug:norm:lisinopril")
    assert doc_id != cache_doc_id("drug:norm:metformin")


def test_key_builders_use_prefixes():
    assert drug_norm_key(" Lisinopril ") == "drug:norm:lisinopril"
    assert ndc_lookup_key("29046") == "ndc:lookup:29046"
    assert rxcui_details_key(" 314076") == "rxcui:details:314076"
