"""
Target schemas for field extraction.

The JSON schema of each model is what the model provider is asked to
conform to, so field descriptions here double as extraction instructions.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel, to_pascal


class LineItem(BaseModel):
    """One item listed on a shipping order."""

    description: str = Field(..., description="Item description")
    quantity: str = Field(..., description="Item quantity")
    value: Optional[str] = Field(None, description="Item value")


class ShippingOrder(BaseModel):
    """
    Generic shipping order, label or delivery document.

    Serialized with PascalCase keys (``OrderNumber``, ``RecipientZip``...).
    """

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)

    order_number: str = Field(..., description="Order or shipment number")
    ship_date: str = Field(..., description="Ship date")
    delivery_date: Optional[str] = Field(None, description="Expected delivery date")
    tracking_number: Optional[str] = Field(None, description="Tracking number")
    carrier: str = Field(..., description="Shipping carrier (UPS, FedEx, USPS, etc.)")
    shipping_method: str = Field(..., description="Shipping method (Ground, Express, etc.)")

    sender_name: str = Field(..., description="Sender name")
    sender_address: str = Field(..., description="Sender address")
    sender_city: str = Field(..., description="Sender city")
    sender_state: str = Field(..., description="Sender state")
    sender_zip: str = Field(..., description="Sender ZIP code")

    recipient_name: str = Field(..., description="Recipient name")
    recipient_address: str = Field(..., description="Recipient address")
    recipient_city: str = Field(..., description="Recipient city")
    recipient_state: str = Field(..., description="Recipient state")
    recipient_zip: str = Field(..., description="Recipient ZIP code")

    weight: Optional[str] = Field(None, description="Package weight")
    dimensions: Optional[str] = Field(None, description="Package dimensions")
    declared_value: Optional[str] = Field(None, description="Declared value")
    shipping_cost: Optional[str] = Field(None, description="Shipping cost")
    billing_account: Optional[str] = Field(None, description="Billing account number")
    special_instructions: Optional[str] = Field(None, description="Special delivery instructions")
    service_type: Optional[str] = Field(None, description="Service type or class")
    items: Optional[List[LineItem]] = Field(None, description="List of items being shipped")


class CroatianInvoice(BaseModel):
    """
    Croatian invoice (račun) with a single line item.

    Serialized with camelCase keys; ``OIB`` fields keep their upper-case suffix.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # Invoice details
    invoice_number: str = Field(..., description="Broj računa")
    issue_place: str = Field(..., description="Mjesto, datum i vrijeme izdavanja")
    due_date: str = Field(..., description="Dospijeće plaćanja")
    delivery_date: str = Field(..., description="Datum isporuke")

    # Seller
    seller_name: str = Field(..., description="Naziv tvrtke izdavatelja")
    seller_street: str = Field(..., description="Ulica izdavatelja")
    seller_city: str = Field(..., description="Grad izdavatelja")
    seller_oib: str = Field(..., alias="sellerOIB", description="OIB izdavatelja")
    owner_name: str = Field(..., description="Vlasnik/Direktor")
    full_address: str = Field(..., description="Puna adresa za footer")
    iban: str = Field(..., description="IBAN")
    bank_name: str = Field(..., description="Naziv banke")

    # Buyer
    buyer_name: str = Field(..., description="Naziv tvrtke/ime kupca")
    buyer_street: str = Field(..., description="Ulica kupca")
    buyer_city: str = Field(..., description="Grad kupca")
    buyer_oib: str = Field(..., alias="buyerOIB", description="OIB kupca")
    buyer_contact: str = Field(..., description="Kontakt osoba")
    buyer_email: str = Field(..., description="Email kupca")

    # Line item
    item1_description: str = Field(..., description="Opis proizvoda/usluge")
    item1_unit: str = Field(..., description="Jedinica mjere")
    item1_quantity: float = Field(..., description="Količina")
    item1_price: float = Field(..., description="Cijena")
    item1_discount: float = Field(..., description="Rabat u postocima")
    item1_total: float = Field(..., description="Ukupno")

    # Payment and totals
    total_amount: float = Field(..., description="Ukupni iznos")
    currency: str = Field(..., description="Valuta")
    payment_method: str = Field(..., description="Način plaćanja")
    issued_by: str = Field(..., description="Račun ispostavio")
    operator_sign: str = Field(..., description="Oznaka operatera")
    payment_reference: str = Field(..., description="Poziv na broj")
    vat_note: str = Field(..., description="Napomena o PDV-u")
