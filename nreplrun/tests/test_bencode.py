import pytest

from nreplrun import bencode


def test_encode_sorts_dict_keys_and_encodes_utf8() -> None:
    data = bencode.encode({"op": "eval", "code": "(+ 1 1)", "id": "7", "ns": "λ"})
    assert data == b"d4:code7:(+ 1 1)2:id1:72:ns2:\xce\xbb2:op4:evale"


def test_encode_lists_and_integers() -> None:
    assert bencode.encode(["done", 3, -1]) == b"l4:donei3ei-1ee"


def test_encode_rejects_booleans_and_unknown_types() -> None:
    with pytest.raises(ValueError):
        bencode.encode({"flag": True})
    with pytest.raises(ValueError):
        bencode.encode({"value": 1.5})


def test_decode_returns_bytes_and_end_offset() -> None:
    value, end = bencode.decode(b"d6:statusl4:donee5:value3::oke")
    assert value == {b"status": [b"done"], b"value": b":ok"}
    assert end == len(b"d6:statusl4:donee5:value3::oke")


def test_decode_text_converts_nested_bytes() -> None:
    value, _ = bencode.decode(b"d3:outl1:a1:be3:numi4ee")
    assert bencode.decode_text(value) == {"out": ["a", "b"], "num": 4}


@pytest.mark.parametrize("partial", [b"d2:id", b"d2:id1:", b"l4:do", b"i12", b"12"])
def test_decode_incomplete_raises(partial: bytes) -> None:
    with pytest.raises(bencode.IncompleteMessage):
        bencode.decode(partial)


def test_decode_malformed_raises_value_error() -> None:
    with pytest.raises(ValueError):
        bencode.decode(b"x")
    with pytest.raises(ValueError):
        bencode.decode(b"iabce")


def test_decoder_handles_split_and_concatenated_chunks() -> None:
    first = bencode.encode({"id": "1", "out": "hello\n"})
    second = bencode.encode({"id": "1", "status": ["done"]})
    stream = first + second
    decoder = bencode.Decoder()
    decoder.feed(stream[:5])
    assert decoder.next_message() is None
    decoder.feed(stream[5:])
    assert bencode.decode_text(decoder.next_message()) == {"id": "1", "out": "hello\n"}
    assert bencode.decode_text(decoder.next_message()) == {"id": "1", "status": ["done"]}
    assert decoder.next_message() is None
    assert decoder.pending == 0
