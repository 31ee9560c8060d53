from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass
class Product:
    id: int
    name: str
    price_eth: Decimal
    category: str = ""
    seller_name: str = ""
    short_desc: str = ""
    full_desc: str = ""
    image: str = ""
    seller_wallet: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "sellerName": self.seller_name,
            "shortDesc": self.short_desc,
            "fullDesc": self.full_desc,
            "priceEth": str(self.price_eth),
            "image": self.image,
            "sellerWallet": self.seller_wallet,
        }


def default_catalogue() -> list[Product]:
    return [
        Product(
            id=1,
            name="Aurora Bloom Figurine",
            category="Limited Drop",
            seller_name="LumenVault",
            short_desc="Iridescent finish, numbered 1-500.",
            full_desc="A glow-layer figurine with etched base and serialized certificate. Ships in a protective case.",
            price_eth=Decimal("0.42"),
            image="/images/popmart1.png",
        ),
        Product(
            id=2,
            name="Neo Koi Limited",
            category="Artist Series",
            seller_name="HarborByte",
            short_desc="Metallic koi with hand-painted details.",
            full_desc="Limited run of 250. Includes tracking hash in escrow once shipped.",
            price_eth=Decimal("0.36"),
            image="/images/popmart2.png",
        ),
        Product(
            id=3,
            name="Orbit Ghost Mech",
            category="New Drop",
            seller_name="RetroCove",
            short_desc="Transparent mech armor with neon core.",
            full_desc="Buyer inspection window enabled. Includes QR to verify authenticity.",
            price_eth=Decimal("0.58"),
            image="/images/popmart3.png",
        ),
        Product(
            id=4,
            name="Sunlit Parade Set",
            category="Collector",
            seller_name="PrismYard",
            short_desc="Four-piece parade set with gold accents.",
            full_desc="Escrow ready to release after delivery confirmation. Stored in foam case.",
            price_eth=Decimal("0.31"),
            image="/images/popmart4.png",
        ),
        Product(
            id=5,
            name="Gilded Astro Rabbit",
            category="Ultra Rare",
            seller_name="NovaStack",
            short_desc="Gold leaf trim, cosmic helmet edition.",
            full_desc="Premium collectible with escrow dispute option enabled for high value.",
            price_eth=Decimal("0.71"),
            image="/images/popmart5.png",
        ),
    ]
