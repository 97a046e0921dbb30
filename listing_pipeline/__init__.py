"""
Listing ingestion pipeline: scrape technology-transfer and grant listings,
validate them and publish them to Kafka.
"""
