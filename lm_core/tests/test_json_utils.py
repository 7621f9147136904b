from lm_core.lm.json_utils import extract_json, get_json_part, strip_code_fence, try_repair_and_parse_json


def test_extracts_json_from_chatty_fenced_reply():
    text = 'Sure! ```json\n{"type":"content","x":1}\n```'
    assert extract_json(text) == {"type": "content", "x": 1}


def test_strips_fully_fenced_reply():
    text = '```json\n{"type": "error", "error": "nope"}\n```'
    assert strip_code_fence(text) == '{"type": "error", "error": "nope"}'
    assert extract_json(text) == {"type": "error", "error": "nope"}


def test_array_comes_first():
    assert get_json_part('result: [1, {"a": 2}] done') == '[1, {"a": 2}]'


def test_braces_inside_strings_do_not_confuse_scanner():
    text = 'Here: {"type": "content", "note": "use } and { freely"} -- thanks {bye}'
    assert extract_json(text) == {"type": "content", "note": "use } and { freely"}


def test_explanatory_braces_before_json_are_sliced_first():
    # 模型在 JSON 之前输出带括号的说明文字时，截到的是说明文字，解析后没有 type，交给重试处理
    assert get_json_part('Use {name} format: {"type": "content"}') == "{name}"


def test_unbalanced_falls_back_to_last_closer():
    assert get_json_part('{"a": [1, 2}') == '{"a": [1, 2}'
    assert get_json_part('x {"a": 1') == 'x {"a": 1'


def test_no_brackets_returns_text_unchanged():
    assert get_json_part("no json here") == "no json here"


def test_repairs_common_mistakes():
    assert try_repair_and_parse_json("{'type': 'content', names: ['A',],}") == {
        "type": "content",
        "names": ["A"],
    }


def test_unparsable_returns_none():
    assert try_repair_and_parse_json("") is None
    assert extract_json(None) is None
