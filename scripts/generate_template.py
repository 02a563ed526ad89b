#!/usr/bin/env python3
"""
Generate synthetic poster templates.

Writes one template container per configured variant: a USDA stage with a
textured quad plus a placeholder poster texture. The containers are zipped
with DEFLATE on purpose, the way hand-made templates usually arrive, so the
builder's STORE re-serialization gets exercised.

Usage:
    python scripts/generate_template.py [output_dir]

Then build a container:
    python -m stagepack.cli assemble templates/ out.usdz --image poster.png --label person
"""

import sys
import zipfile
from io import BytesIO
from pathlib import Path

from PIL import Image, ImageDraw

# Add parent directory to path to import stagepack
sys.path.append(str(Path(__file__).parent.parent))

from stagepack.config import default_config
from stagepack.variant import Variant

TILE = 32

# width, height in meters per variant
QUAD_SIZES = {
    Variant.A: (0.6, 0.9),
    Variant.B: (0.9, 0.6),
}

STAGE_TEMPLATE = """#usda 1.0
(
    defaultPrim = "Poster"
    metersPerUnit = 1
    upAxis = "Y"
)

def Xform "Poster" (
    assetInfo = {{
        string name = "Poster"
    }}
    kind = "component"
)
{{
    def Mesh "Quad"
    {{
        int[] faceVertexCounts = [4]
        int[] faceVertexIndices = [0, 1, 2, 3]
        point3f[] points = [({x0}, 0, 0), ({x1}, 0, 0), ({x1}, {h}, 0), ({x0}, {h}, 0)]
        texCoord2f[] primvars:st = [(0, 0), (1, 0), (1, 1), (0, 1)] (
            interpolation = "vertex"
        )
        rel material:binding = </Poster/Materials/PosterMaterial>
    }}

    def Scope "Materials"
    {{
        def Material "PosterMaterial"
        {{
            token outputs:surface.connect = </Poster/Materials/PosterMaterial/Surface.outputs:surface>

            def Shader "Surface"
            {{
                uniform token info:id = "UsdPreviewSurface"
                color3f inputs:diffuseColor.connect = </Poster/Materials/PosterMaterial/Texture.outputs:rgb>
                float inputs:roughness = 0.8
                token outputs:surface
            }}

            def Shader "Texture"
            {{
                uniform token info:id = "UsdUVTexture"
                asset inputs:file = @textures/poster.png@
                float2 inputs:st.connect = </Poster/Materials/PosterMaterial/Reader.outputs:result>
                float3 outputs:rgb
            }}

            def Shader "Reader"
            {{
                uniform token info:id = "UsdPrimvarReader_float2"
                string inputs:varname = "st"
                float2 outputs:result
            }}
        }}
    }}
}}
"""


def render_placeholder(width: int, height: int, label: str) -> bytes:
    """Checkerboard PNG with a caption, used until a real poster is swapped in."""
    img = Image.new("RGB", (width, height), (200, 200, 200))
    draw = ImageDraw.Draw(img)
    for y in range(0, height, TILE):
        for x in range(0, width, TILE):
            if (x // TILE + y // TILE) % 2:
                draw.rectangle([x, y, x + TILE - 1, y + TILE - 1], fill=(150, 150, 150))
    draw.text((10, 10), label, fill=(20, 20, 20))

    buffer = BytesIO()
    img.save(buffer, "PNG")
    return buffer.getvalue()


def build_stage(variant: Variant) -> str:
    width, height = QUAD_SIZES[variant]
    return STAGE_TEMPLATE.format(x0=-width / 2, x1=width / 2, h=height)


def main():
    out = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("templates")
    out.mkdir(parents=True, exist_ok=True)
    config = default_config()

    for variant, descriptor in config.templates.items():
        width, height = QUAD_SIZES[variant]
        poster = render_placeholder(int(width * 512), int(height * 512), f"variant {variant.value}")

        archive_path = out / descriptor.archive_filename
        with zipfile.ZipFile(archive_path, "w", zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(descriptor.stage_entry_name, build_stage(variant))
            zf.writestr("textures/poster.png", poster)

        size_kb = archive_path.stat().st_size / 1024
        print(f"Template {variant.value}: {archive_path}  ({size_kb:.1f} KB)")
        print(f"  stage: {descriptor.stage_entry_name}")

    print(f"\nBuild a container:  python -m stagepack.cli assemble {out} out.usdz --image poster.png")


if __name__ == "__main__":
    main()
