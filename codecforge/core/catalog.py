"""Default unit catalog and license tiers.

Dependencies are declared data. The aggregate unit declares none; the
registry makes it depend on every other unit of the active tier.
"""

from __future__ import annotations

from codecforge.models.tiers import TierDefinition
from codecforge.models.units import ArtifactDescriptor, ArtifactKind, LicenseClass, Unit

P = LicenseClass.PERMISSIVE
LGPL = LicenseClass.WEAK_COPYLEFT
GPL = LicenseClass.COPYLEFT
NONFREE = LicenseClass.NONFREE


def _lib(
    unit_id: str,
    display_name: str,
    license_class: LicenseClass,
    archive: str,
    pkg_config: str,
    version_key: str,
    dependencies: tuple[str, ...] = (),
) -> Unit:
    return Unit(
        unit_id=unit_id,
        display_name=display_name,
        license_class=license_class,
        artifact=ArtifactDescriptor(artifact=f"lib/{archive}", pkg_config=pkg_config),
        dependencies=frozenset(dependencies),
        version_key=version_key,
    )


DEFAULT_UNITS: tuple[Unit, ...] = (
    _lib("ogg", "libogg", P, "libogg.a", "ogg", "OGG_VERSION"),
    _lib("vorbis", "libvorbis", P, "libvorbis.a", "vorbis", "VORBIS_VERSION", ("ogg",)),
    _lib("opus", "Opus", P, "libopus.a", "opus", "OPUS_VERSION"),
    _lib("lame", "LAME", LGPL, "libmp3lame.a", "mp3lame", "LAME_VERSION"),
    _lib("libvpx", "libvpx (VP8/VP9)", P, "libvpx.a", "vpx", "LIBVPX_VERSION"),
    _lib("aom", "libaom (AV1)", P, "libaom.a", "aom", "AOM_VERSION"),
    _lib("dav1d", "dav1d (AV1 decoder)", P, "libdav1d.a", "dav1d", "DAV1D_VERSION"),
    _lib("svt-av1", "SVT-AV1", P, "libSvtAv1Enc.a", "SvtAv1Enc", "SVTAV1_VERSION"),
    _lib("theora", "libtheora", P, "libtheora.a", "theora", "THEORA_VERSION", ("ogg",)),
    _lib("flac", "FLAC", P, "libFLAC.a", "flac", "FLAC_VERSION", ("ogg",)),
    _lib("speex", "Speex", P, "libspeex.a", "speex", "SPEEX_VERSION"),
    _lib("freetype", "FreeType", P, "libfreetype.a", "freetype2", "FREETYPE_VERSION"),
    _lib("libass", "libass", P, "libass.a", "libass", "LIBASS_VERSION", ("freetype",)),
    _lib("x264", "x264 (H.264)", GPL, "libx264.a", "x264", "X264_VERSION"),
    _lib("x265", "x265 (HEVC)", GPL, "libx265.a", "x265", "X265_VERSION"),
    _lib("xvid", "Xvid (MPEG-4 ASP)", GPL, "libxvidcore.a", "xvidcore", "XVID_VERSION"),
    _lib("fdk-aac", "Fraunhofer FDK AAC", NONFREE, "libfdk-aac.a", "fdk-aac", "FDK_AAC_VERSION"),
    Unit(
        unit_id="ffmpeg",
        display_name="FFmpeg",
        license_class=LGPL,
        artifact=ArtifactDescriptor(
            artifact="bin/ffmpeg",
            pkg_config="libavcodec",
            kind=ArtifactKind.EXECUTABLE,
        ),
        version_key="FFMPEG_VERSION",
        is_aggregate=True,
    ),
)

DEFAULT_TIERS: tuple[TierDefinition, ...] = (
    TierDefinition(
        name="free",
        units=(
            "ogg", "vorbis", "opus", "lame", "libvpx", "aom", "dav1d",
            "svt-av1", "theora", "flac", "speex", "freetype", "libass",
        ),
        allowed_licenses=frozenset({P, LGPL}),
        license_label="LGPL-2.1-or-later",
    ),
    TierDefinition(
        name="non-free",
        extends=("free",),
        units=("x264", "x265", "xvid", "fdk-aac"),
        allowed_licenses=frozenset({P, LGPL, GPL, NONFREE}),
        license_label="GPL-2.0-or-later, nonfree (not redistributable)",
    ),
)

# Deprecated tier names from the three-tier scheme.
DEFAULT_ALIASES: dict[str, str] = {
    "bsd": "free",
    "lgpl": "free",
    "gpl": "non-free",
}
