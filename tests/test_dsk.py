from secureflash.dsk import derive_dsk, extract_qr_code

from conftest import QR_OUTPUT

QR = "900132782003515253545541424344453132333435363738393031323334353637383940414243"


def test_extract_first_long_digit_run():
    assert extract_qr_code(QR_OUTPUT) == QR


def test_extract_ignores_short_numbers():
    assert extract_qr_code("serial 440123456, part 1234567890") is None
    assert extract_qr_code("") is None
    assert extract_qr_code(None) is None


def test_extract_needs_sixty_digits():
    assert extract_qr_code("x" + "1" * 59 + "x") is None
    assert extract_qr_code("x" + "1" * 60 + "x") == "1" * 60


def test_derive_dsk_window_and_grouping():
    assert derive_dsk(QR) == "15253-54554-14243-44453-13233-34353-63738-39303"


def test_derive_dsk_matches_slice_definition():
    digits = "".join(str(i % 10) for i in range(64))
    window = digits[13:53]
    expected = "-".join(window[i:i + 5] for i in range(0, 40, 5))
    dsk = derive_dsk(digits)
    assert dsk == expected
    assert not dsk.endswith("-")
    assert len(dsk.replace("-", "")) == 40
