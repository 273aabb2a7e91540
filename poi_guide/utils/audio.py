"""
오디오 버퍼 헬퍼

PCM → WAV 변환, WAV 청크 병합, 포맷별 버퍼 연결, dry-run용 더미 MP3.
"""

import struct
from typing import Dict, List, Tuple

CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
}

# 간단한 MP3 헤더 (실제 재생은 안되지만 파일 형식은 유지)
DUMMY_MP3_BYTES = bytes([
    0xFF, 0xFB, 0x90, 0x00,  # MP3 동기 워드와 기본 헤더
    0x00, 0x00, 0x00, 0x00,
    0x49, 0x6E, 0x66, 0x6F,  # "Info" 태그
]) + b"\x00" * 100


def _wav_header(data_size: int, sample_rate: int, bits_per_sample: int, num_channels: int = 1) -> bytes:
    bytes_per_sample = bits_per_sample // 8
    block_align = num_channels * bytes_per_sample
    byte_rate = sample_rate * block_align

    # http://soundfile.sapp.org/doc/WaveFormat/
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_size,   # ChunkSize (total file size - 8 bytes)
        b"WAVE",
        b"fmt ",
        16,               # Subchunk1Size (16 for PCM)
        1,                # AudioFormat (1 for PCM)
        num_channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        b"data",
        data_size,
    )


def parse_audio_mime_type(mime_type: str) -> Dict[str, int]:
    """
    오디오 MIME type 문자열에서 bits per sample과 rate를 파싱합니다.

    Args:
        mime_type: 오디오 MIME type 문자열 (예: "audio/L16;rate=24000")

    Returns:
        dict: "bits_per_sample"과 "rate" 키를 포함하는 딕셔너리
    """
    bits_per_sample = 16
    rate = 24000

    for param in mime_type.split(";"):
        param = param.strip()
        if param.lower().startswith("rate="):
            try:
                rate = int(param.split("=", 1)[1])
            except (ValueError, IndexError):
                pass
        elif param.startswith("audio/L"):
            try:
                bits_per_sample = int(param.split("L", 1)[1])
            except (ValueError, IndexError):
                pass

    return {"bits_per_sample": bits_per_sample, "rate": rate}


def convert_to_wav(audio_data: bytes, mime_type: str) -> bytes:
    """
    원시 PCM 데이터에 WAV 헤더를 붙입니다.

    Args:
        audio_data: 원시 오디오 데이터 (bytes)
        mime_type: 오디오 데이터의 MIME type

    Returns:
        bytes: WAV 파일 헤더가 포함된 bytes
    """
    parameters = parse_audio_mime_type(mime_type)
    header = _wav_header(len(audio_data), parameters["rate"], parameters["bits_per_sample"])
    return header + audio_data


def _read_wav(buffer: bytes) -> Tuple[Tuple[int, int, int], bytes]:
    """WAV 버퍼에서 (채널 수, 샘플레이트, 비트 수)와 PCM 데이터를 꺼낸다."""
    if len(buffer) < 12 or buffer[:4] != b"RIFF" or buffer[8:12] != b"WAVE":
        raise ValueError("WAV 형식이 아닌 오디오 버퍼입니다.")

    fmt = None
    data = None
    offset = 12
    while offset + 8 <= len(buffer):
        chunk_id, size = struct.unpack("<4sI", buffer[offset:offset + 8])
        body = buffer[offset + 8:offset + 8 + size]
        if chunk_id == b"fmt ":
            fmt = body
        elif chunk_id == b"data":
            data = body
        offset += 8 + size + (size % 2)

    if fmt is None or data is None or len(fmt) < 16:
        raise ValueError("WAV 버퍼에 fmt/data 청크가 없습니다.")

    _, channels, sample_rate, _, _, bits = struct.unpack("<HHIIHH", fmt[:16])
    return (channels, sample_rate, bits), data


def merge_wav(buffers: List[bytes]) -> bytes:
    """
    여러 WAV 버퍼를 하나의 WAV 컨테이너로 병합합니다.

    모든 버퍼는 첫 번째 버퍼와 같은 채널/샘플레이트/비트 수를 가져야 한다.

    Raises:
        ValueError: 형식이 다른 버퍼가 섞여 있을 경우
    """
    params = None
    pcm: List[bytes] = []
    for buffer in buffers:
        buffer_params, data = _read_wav(buffer)
        if params is None:
            params = buffer_params
        elif buffer_params != params:
            raise ValueError(f"WAV 형식이 일치하지 않습니다: {params} != {buffer_params}")
        pcm.append(data)

    if params is None:
        raise ValueError("병합할 WAV 버퍼가 없습니다.")

    channels, sample_rate, bits = params
    data = b"".join(pcm)
    return _wav_header(len(data), sample_rate, bits, channels) + data


def concat_audio(buffers: List[bytes], audio_format: str) -> bytes:
    """
    청크별 오디오 버퍼를 순서대로 연결합니다.

    MP3는 프레임 단위 스트림이라 바이트 연결로 재생 가능하고,
    WAV는 헤더를 하나로 합쳐야 한다.
    """
    if len(buffers) == 1:
        return buffers[0]
    if audio_format == "wav":
        return merge_wav(buffers)
    return b"".join(buffers)
