def main():
    """Print quick-start command references for the search service."""
    print("equipsearch: hybrid equipment search")
    print("Key commands:")
    print("  python build_index.py [--embed]          # corpus -> index snapshot (Prefect flow)")
    print("  python query_index.py \"<query>\"          # query from the terminal")
    print("  uvicorn app.api:app --port 8000           # HTTP API (/health, /search, /search/batch)")
    print("  pytest                                    # test suite")


if __name__ == "__main__":
    main()
