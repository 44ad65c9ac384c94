import asyncio

import pytest

from app.models.asset import AssetKind, AssetRole, Product, ProductAsset
from app.services.asset_persister import AssetPersister, get_layout, image_size, slugify

from conftest import FakeClock, png_bytes

PRODUCT = "prod-0001-abcdef"


@pytest.fixture
def persister(db, storage):
    return AssetPersister(db, storage, clock=lambda: 1_700_000_000.5)


class TestLayouts:

    @pytest.mark.parametrize("kind, category, subcategory, role", [
        (AssetKind.SOURCE, "graphics", "original", AssetRole.DESIGN),
        (AssetKind.DTF, "graphics", "dtf", AssetRole.DESIGN),
        (AssetKind.NOBG, "graphics", "transparent", AssetRole.AUXILIARY),
        (AssetKind.UPSCALED, "graphics", "upscaled", AssetRole.AUXILIARY),
    ])
    def test_graphics(self, kind, category, subcategory, role):
        layout = get_layout(kind)
        assert (layout.category, layout.subcategory, layout.asset_role) == (category, subcategory, role)
        assert layout.display_order == 99
        assert layout.is_primary is False

    @pytest.mark.parametrize("template, order, primary", [
        ("mr_imagine", 1, True),
        ("flat_lay", 2, False),
        ("ghost_mannequin", 3, False),
    ])
    def test_mockups(self, template, order, primary):
        layout = get_layout(AssetKind.MOCKUP, template)
        assert layout.category == "mockups"
        assert layout.subcategory == template
        assert layout.asset_role == f"mockup_{template}"
        assert layout.display_order == order
        assert layout.is_primary is primary

    def test_unknown_template_or_kind(self):
        with pytest.raises(ValueError):
            get_layout(AssetKind.MOCKUP, "hanger")
        with pytest.raises(ValueError):
            get_layout("thumbnail")


class TestBuildPath:

    def test_uses_product_slug(self, persister, product):
        path = persister.build_path(PRODUCT, AssetKind.NOBG)
        assert path == "graphics/sunset-fox-tee/transparent/sunset-fox-tee-nobg-1700000000500.png"

    def test_falls_back_to_name_then_id(self, db, persister):
        db.add(Product(id="prod-named", name="Night Owl  Hoodie!"))
        db.commit()
        assert persister.product_slug("prod-named") == "night-owl-hoodie"
        assert persister.product_slug("abcdef1234567890") == "abcdef12"

    def test_mockup_discriminator_is_template(self, persister, product):
        path = persister.build_path(PRODUCT, AssetKind.MOCKUP, template="flat_lay")
        assert path.startswith("mockups/sunset-fox-tee/flat_lay/sunset-fox-tee-flat_lay-")

    def test_custom_discriminator_and_extension(self, persister, product):
        path = persister.build_path(PRODUCT, AssetKind.SOURCE, discriminator="source-flux", ext="webp")
        assert path.endswith("/original/sunset-fox-tee-source-flux-1700000000500.webp")


class TestPersist:

    def test_persist_bytes(self, db, storage, persister, product):
        data = png_bytes(size=(24, 12))
        asset = asyncio.run(persister.persist(PRODUCT, AssetKind.DTF, data=data, metadata={"model_id": "m"}))
        db.commit()

        stored = db.get(ProductAsset, asset.id)
        assert stored.kind == AssetKind.DTF
        assert stored.asset_role == AssetRole.DESIGN
        assert (stored.width, stored.height) == (24, 12)
        assert stored.url == f"/files/{stored.path}"
        assert stored.asset_metadata == {"model_id": "m"}
        assert (storage.base_path / stored.path).read_bytes() == data

    def test_persist_downloads_url(self, db, storage, persister, product):
        storage.remote["https://cdn.test/out.png"] = png_bytes()
        asset = asyncio.run(persister.persist(PRODUCT, AssetKind.UPSCALED, url="https://cdn.test/out.png"))

        assert storage.downloads == ["https://cdn.test/out.png"]
        assert asset.asset_metadata["provider_url"] == "https://cdn.test/out.png"

    def test_needs_url_or_data(self, persister):
        with pytest.raises(ValueError):
            asyncio.run(persister.persist(PRODUCT, AssetKind.SOURCE))

    def test_primary_mockup_demotes_previous_primary(self, db, storage, product):
        persister = AssetPersister(db, storage, clock=FakeClock())
        first = asyncio.run(persister.persist(PRODUCT, AssetKind.MOCKUP, data=png_bytes(), template="mr_imagine"))
        db.commit()
        second = asyncio.run(persister.persist(PRODUCT, AssetKind.MOCKUP, data=png_bytes(), template="mr_imagine"))
        flat = asyncio.run(persister.persist(PRODUCT, AssetKind.MOCKUP, data=png_bytes(), template="flat_lay"))
        db.commit()
        db.expire_all()

        assert db.get(ProductAsset, first.id).is_primary is False
        assert db.get(ProductAsset, second.id).is_primary is True
        assert db.get(ProductAsset, flat.id).is_primary is False
        assert db.get(ProductAsset, second.id).asset_metadata["template"] == "mr_imagine"
        primaries = db.query(ProductAsset).filter(ProductAsset.is_primary.is_(True)).count()
        assert primaries == 1

    def test_persist_model_file(self, storage, persister):
        url, path = asyncio.run(persister.persist_model_file("m3d-1", "mesh", "model", data=b"glb", ext="glb"))
        assert path == "3d-models/m3d-1/mesh/model-1700000000500.glb"
        assert url == f"/files/{path}"
        assert (storage.base_path / path).read_bytes() == b"glb"


class TestHelpers:

    def test_slugify(self):
        assert slugify("  Hello, World! 2024 ") == "hello-world-2024"
        assert slugify("") == ""

    def test_image_size_falls_back_for_non_images(self):
        assert image_size(b"not an image") == (1024, 1024)
