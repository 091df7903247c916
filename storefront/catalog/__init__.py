"""Product snapshot cache fed from Zoho Inventory."""
